from src.infrastructure.utils.formatting import format_duration_ms
from src.infrastructure.utils.json_extractor import extract_json

__all__ = ["extract_json", "format_duration_ms"]
