from typing import Any, Dict

from .charts import ChartRenderer
from .docx import DocxRenderer
from .html import HtmlRenderer
from .pdf import PdfRenderer


def default_renderers() -> Dict[str, Any]:
    return {"HTML": HtmlRenderer(), "PDF": PdfRenderer(), "DOCX": DocxRenderer()}


__all__ = ["ChartRenderer", "DocxRenderer", "HtmlRenderer", "PdfRenderer", "default_renderers"]
