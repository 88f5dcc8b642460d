"""charforge: character document generation for conversational agents."""

from charforge.errors import CharforgeError
from charforge.extractor import ExtractionError, ExtractionFailure, extract
from charforge.models import CharacterDocument, GenerationMode, GenerationResult
from charforge.normalizer import coerce_document, normalize
from charforge.schemas import ValidationError

__all__ = [
    "CharacterDocument",
    "CharforgeError",
    "ExtractionError",
    "ExtractionFailure",
    "GenerationMode",
    "GenerationResult",
    "ValidationError",
    "coerce_document",
    "extract",
    "normalize",
]
