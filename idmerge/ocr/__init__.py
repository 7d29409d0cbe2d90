# idmerge/ocr/__init__.py
# ============================================================
# Recognition Package
# ============================================================
# Everything between an image and its extracted fields:
#   - RecognitionGateway: timeout + retry policy around a provider
#   - BaiduOcrClient: the Baidu OCR REST provider (httpx)
#   - FrontFields / BackFields: typed extraction results
#   - RecognitionHint: which side hypothesis a call tests
# ============================================================

from idmerge.ocr.baidu import BaiduOcrClient
from idmerge.ocr.gateway import RecognitionCapability, RecognitionGateway
from idmerge.ocr.hints import RecognitionHint, list_hints
from idmerge.ocr.results import BackFields, ExtractionResult, FrontFields

__all__ = [
    "BaiduOcrClient",
    "RecognitionCapability",
    "RecognitionGateway",
    "RecognitionHint",
    "list_hints",
    "FrontFields",
    "BackFields",
    "ExtractionResult",
]
