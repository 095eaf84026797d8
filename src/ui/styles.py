"""
CSS styles for the video-to-3D asset generator UI.
"""

APP_CSS = """
:root {
    --primary-color: #2563eb;
    --primary-light: #3b82f6;
    --success-color: #059669;
    --warning-color: #d97706;
    --error-color: #dc2626;
    --radius-lg: 12px;
}

.app-header {
    background: linear-gradient(135deg, var(--primary-color), var(--primary-light));
    color: white;
    text-align: center;
    padding: 1.5rem;
    border-radius: var(--radius-lg);
    margin-bottom: 1.5rem;
}

.app-title {
    font-size: 2rem;
    font-weight: 700;
}

.status-success { color: var(--success-color); font-weight: 500; }
.status-warning { color: var(--warning-color); font-weight: 500; }
.status-error { color: var(--error-color); font-weight: 500; }
"""
