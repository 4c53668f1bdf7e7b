from .status import update_report_status
from .profile import profile_data
from .insights import generate_insights
from .charts import generate_charts
from .layout import render_layout
from .export import export_formats
from .finalize import finalize_report

__all__ = [
    "update_report_status",
    "profile_data",
    "generate_insights",
    "generate_charts",
    "render_layout",
    "export_formats",
    "finalize_report",
]
