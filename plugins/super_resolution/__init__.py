"""Super resolution plugin."""

manifest = {
    "title": "Super Resolution",
    "summary": "Select a region of an image and upscale it 2x or 4x with Real-ESRGAN.",
    "blueprint": "super_resolution",
    "category": "Image Enhancement",
    "api": "/api/v1/super_resolution",
}


__all__ = ["manifest"]
