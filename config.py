import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # --- Server ---
    port: int = 8080
    workers: int = 4
    graceful_shutdown_timeout: int = 30

    # --- File Limits ---
    max_file_size_mb: int = 32
    max_file_size_bytes: int = 0  # Computed in model_post_init
    max_canvas_pixels: int = 89_478_485  # Same default as Pillow's MAX_IMAGE_PIXELS
    max_output_pixels: int = 67_108_864  # Per upscaled frame (64 Mpx, 256 MB RGBA)

    # --- Upscale Defaults ---
    min_scale: int = 2
    max_scale: int = 10
    default_scale: int = 2
    default_loop_count: int = 0  # 0 = loop forever

    # --- Frame Timing ---
    default_frame_duration_ms: int = 100  # GIF frames without a Graphic Control Extension
    min_frame_delay_cs: int = 1
    preserve_zero_delay: bool = False

    # --- Encoder Selection ---
    quantize_method: str = "mediancut"  # "mediancut", "maxcoverage" or "fastoctree"
    webp_method: int = 4  # libwebp effort, 0 (fast) to 6 (slow)

    # --- Concurrency ---
    conversion_semaphore_size: int = 0  # 0 = use CPU count
    max_queue_depth: int = 0  # 0 = 2 * CPU count

    # --- Security ---
    allowed_origins: str = "*"

    # --- Logging ---
    log_level: str = "ERROR"

    model_config = {"env_prefix": "", "case_sensitive": False}

    def model_post_init(self, __context) -> None:
        if self.max_file_size_bytes == 0:
            self.max_file_size_bytes = self.max_file_size_mb * 1024 * 1024
        if self.conversion_semaphore_size == 0:
            self.conversion_semaphore_size = os.cpu_count() or 4
        if self.max_queue_depth == 0:
            self.max_queue_depth = 2 * self.conversion_semaphore_size


settings = Settings()
