from .service import ConversionService, get_conversion_service
from .models import ConversionRequest, EncodedOutput, UploadedImage

__all__ = ["ConversionService", "get_conversion_service", "ConversionRequest", "EncodedOutput", "UploadedImage"]
