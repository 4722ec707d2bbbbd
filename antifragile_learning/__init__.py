"""
antifragile_learning: learns from attention fractures instead of just avoiding them.

Each frame's Fracture Index is watched for breakdowns. Every breakdown is
analysed post-mortem and fed to a Q-learning policy that chooses
interventions. The same loop runs every tick.
"""

from . import features
from .config import AntifragileConfig
from .engine import AntifragileEngine, FrameResult
from .memory import FractureHistory, FrameBuffer, ReplayBuffer
from .pathway import FailurePathwayAnalyzer
from .patterns import PatternMiner
from .policy import (
    PolicyLearner,
    QTable,
    discretize,
    extract_state_vector,
    map_opportunity_to_action,
    softmax,
    state_key,
)
from .types import (
    ACTION_SPACE,
    NO_ACTION,
    Action,
    CognitiveProfile,
    ContributingFactor,
    Experience,
    FailurePathway,
    FractureEvent,
    FractureProcessed,
    Frame,
    InterventionPoint,
    InterventionType,
    LearningSignal,
    PolicyUpdated,
    StructuralAdaptation,
)

__all__ = [
    "features",
    "AntifragileConfig",
    "AntifragileEngine",
    "FrameResult",
    "FrameBuffer",
    "ReplayBuffer",
    "FractureHistory",
    "FailurePathwayAnalyzer",
    "PatternMiner",
    "PolicyLearner",
    "QTable",
    "discretize",
    "extract_state_vector",
    "map_opportunity_to_action",
    "softmax",
    "state_key",
    "ACTION_SPACE",
    "NO_ACTION",
    "Action",
    "CognitiveProfile",
    "ContributingFactor",
    "Experience",
    "FailurePathway",
    "FractureEvent",
    "FractureProcessed",
    "Frame",
    "InterventionPoint",
    "InterventionType",
    "LearningSignal",
    "PolicyUpdated",
    "StructuralAdaptation",
]
