from image_uploader.models.image import Image

__all__ = ["Image"]
