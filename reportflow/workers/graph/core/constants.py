from pathlib import Path

STATUS_QUEUED = "QUEUED"
STATUS_DATA_PROFILING = "DATA_PROFILING"
STATUS_INSIGHT_GENERATION = "INSIGHT_GENERATION"
STATUS_CHART_GENERATION = "CHART_GENERATION"
STATUS_LAYOUT_RENDERING = "LAYOUT_RENDERING"
STATUS_EXPORTING = "EXPORTING"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"

STATUS_ORDER = [
    STATUS_QUEUED,
    STATUS_DATA_PROFILING,
    STATUS_INSIGHT_GENERATION,
    STATUS_CHART_GENERATION,
    STATUS_LAYOUT_RENDERING,
    STATUS_EXPORTING,
    STATUS_COMPLETED,
]
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})

# (graph node, status, progress, current step label, cancellation checked before the step)
STEP_ORDER = [
    ("profile", STATUS_DATA_PROFILING, 10, "Analyzing and profiling input data", False),
    ("insights", STATUS_INSIGHT_GENERATION, 30, "Generating insights with AI", True),
    ("charts", STATUS_CHART_GENERATION, 50, "Creating visualizations", True),
    ("layout", STATUS_LAYOUT_RENDERING, 70, "Rendering report layout", True),
    ("export", STATUS_EXPORTING, 90, "Exporting to requested formats", True),
    ("finalize", STATUS_COMPLETED, 100, "Report complete", False),
]

INITIAL_STEP_LABEL = "Initializing"
QUEUED_STEP_LABEL = "Queued"
FAILED_STEP_LABEL = "Failed"
CANCELLED_MESSAGE = "Workflow cancelled by user"
UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"
LOST_INSTANCE_MESSAGE = "Instance lost before execution started"

OUTPUT_FORMATS = ("PDF", "DOCX", "HTML")
OUTPUT_EXTENSIONS = {"PDF": "pdf", "DOCX": "docx", "HTML": "html"}

# profiler
TYPE_THRESHOLD = 0.8
CATEGORICAL_UNIQUE_RATIO = 0.5
CATEGORICAL_MIN_VALUES = 10
TOP_VALUES_LIMIT = 5
MAX_CHART_SUGGESTIONS = 8
MAX_LINE_SUGGESTIONS = 3
MAX_BAR_CATEGORIES = 2
MAX_BAR_METRICS = 2
MAX_PIE_SUGGESTIONS = 2
MAX_PIE_CARDINALITY = 8
MAX_STACKED_METRICS = 3
QUALITY_NULL_WEIGHT = 30
QUALITY_UNIQUENESS_PENALTY = 20
QUALITY_UNIQUENESS_FLOOR = 0.1
QUALITY_UNKNOWN_WEIGHT = 20

_NULL_SENTINELS = {"", "null", "NULL", "NaN", "nan"}
_BOOLEAN_STRINGS = {"true": True, "false": False}

# charts
CHART_WIDTH = 800
CHART_HEIGHT = 500
MAX_BAR_CATEGORIES_RENDERED = 10
MAX_PIE_SLICES = 8
CHART_PALETTE = [
    "#3182ce",
    "#48bb78",
    "#ed8936",
    "#e53e3e",
    "#805ad5",
    "#38b2ac",
    "#d69e2e",
    "#dd6b20",
    "#3182ce",
    "#718096",
]
CHART_PRIMARY = "#3182ce"

# narrative
MAX_NARRATIVE_SAMPLE_ROWS = 20
MAX_NARRATIVE_TEXT_CHARS = 20000
DEFAULT_EXECUTIVE_SUMMARY = "Executive summary not available."

_TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates"
_REPORT_TEMPLATE_NAME = "report.html.j2"
