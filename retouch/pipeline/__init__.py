"""
Retouch Pipeline

Analysis, single-step editing, step validation and the orchestrator that runs
variation pipelines concurrently.
"""

from .analyzer import ImageAnalyzer, AnalysisMemo, create_fallback_analysis
from .client import GeminiClient, ModelCallError, get_gemini_client
from .editor import SingleEditApplier, EditResult
from .validator import StepValidator
from .plan import OrderedFixPlan, normalize_fix_selections, selections_from_options, EDIT_ORDER
from .sequential import SequentialPipeline, SequentialStep, PipelineRun
from .progress import ProgressChannel, ProgressTracker, ProgressEmitter
from .orchestrator import PipelineOrchestrator
from .planner import plan_edits
from .critic import FinalReviewer

__all__ = [
    # Analysis
    "ImageAnalyzer",
    "AnalysisMemo",
    "create_fallback_analysis",
    # Model access
    "GeminiClient",
    "ModelCallError",
    "get_gemini_client",
    # Editing
    "SingleEditApplier",
    "EditResult",
    # Validation
    "StepValidator",
    # Planning
    "OrderedFixPlan",
    "normalize_fix_selections",
    "selections_from_options",
    "EDIT_ORDER",
    "plan_edits",
    # Execution
    "SequentialPipeline",
    "SequentialStep",
    "PipelineRun",
    "PipelineOrchestrator",
    # Progress
    "ProgressChannel",
    "ProgressTracker",
    "ProgressEmitter",
    # Review
    "FinalReviewer",
]
