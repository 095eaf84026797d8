"""
Main Gradio UI application for the video-to-3D asset generator.

Upload a video, watch the per-frame model table fill in while jobs are
polled, and preview finished models.
"""

import gradio as gr
import structlog

from src.core.app import VideoAssetApp

from .handlers import TABLE_HEADERS, UIHandlers
from .styles import APP_CSS

logger = structlog.get_logger(__name__)


class VideoAssetUI:
    """Main UI class for the video-to-3D interface."""

    def __init__(self, app: VideoAssetApp):
        self.app = app
        self.handlers = UIHandlers(app)

    def create_interface(self) -> gr.Blocks:
        """Create the main Gradio interface."""
        settings = self.app.settings
        with gr.Blocks(css=APP_CSS, title=settings.gradio_title) as interface:
            gr.HTML(f"""
                <div class="app-header">
                    <h1 class="app-title">🎬 {settings.gradio_title}</h1>
                    <p>{settings.gradio_description}</p>
                </div>
            """)

            with gr.Row():
                with gr.Column(scale=1):
                    video_input = gr.Video(label="Video", sources=["upload"])
                    generate_btn = gr.Button("🚀 Generate models", variant="primary")
                    cancel_btn = gr.Button("❌ Cancel", variant="secondary")
                    status_display = gr.HTML()
                with gr.Column(scale=2):
                    model_table = gr.Dataframe(headers=TABLE_HEADERS, interactive=False, wrap=True)
                    event_log = gr.Textbox(label="Log", lines=6, interactive=False)

            with gr.Row():
                asset_select = gr.Dropdown(label="Preview model", choices=[], interactive=True)
                model_viewer = gr.Model3D(label="3D Model Preview", height=400)

            refresh_timer = gr.Timer(value=settings.poll_interval, active=False)

            interface.load(fn=self.handlers.startup, outputs=[status_display])

            generate_btn.click(
                fn=self._on_generate,
                inputs=[video_input],
                outputs=[status_display, model_table, event_log, refresh_timer, asset_select],
            )
            cancel_btn.click(fn=self._on_cancel, outputs=[status_display, refresh_timer])
            refresh_timer.tick(
                fn=self._on_tick,
                outputs=[model_table, event_log, refresh_timer, asset_select],
                show_progress="hidden",
            )
            asset_select.change(fn=self.handlers.preview_model, inputs=[asset_select], outputs=[model_viewer])

        return interface

    async def _on_generate(self, video_path: str | None):
        status, rows, log_text, polling = await self.handlers.process_video(video_path)
        return status, rows, log_text, gr.Timer(active=polling), gr.Dropdown(choices=self.handlers.ready_assets())

    def _on_cancel(self):
        status, polling = self.handlers.cancel()
        return status, gr.Timer(active=polling)

    def _on_tick(self):
        rows, log_text, polling = self.handlers.refresh()
        return rows, log_text, gr.Timer(active=polling), gr.Dropdown(choices=self.handlers.ready_assets())


def create_app_interface(app: VideoAssetApp) -> gr.Blocks:
    """Create the main application interface."""
    ui = VideoAssetUI(app)
    return ui.create_interface()
