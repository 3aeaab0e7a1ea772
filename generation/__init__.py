"""
Pattern Analysis + Question Prediction
generation/

Steps:
1. Pattern Analyzer  - frequency tables + topic importance over all past papers
2. Scope Filter      - operator-selected modules/topics, with exclusions
3. Predictor         - prompt → text-generation collaborator → validated, stored prediction
"""

from .pattern_analyzer import CorpusQuestion, analyze_patterns, analyze_subject, load_corpus, score_topic
from .scope_filter import default_scope, filter_syllabus
from .predictor import (
    GenerationError,
    MalformedPredictionError,
    PredictionNotFoundError,
    PredictionPersistenceError,
    ScopeEmptyError,
    SubjectNotFoundError,
    SyllabusNotFoundError,
    generate_predictions,
    list_predictions,
    mark_validated,
)
