"""CSV to Third Normal Form schema inference."""
from .analysis import RedundancyAnalyzer, RedundancyReport
from .config import CONFIG, NormalizerConfig
from .entities import EntityDetector
from .errors import ConfigurationError, Csv3nfError, InvalidInputError, NormalizationError
from .inference import StructureInferencer, csv_stats, preview_structure, validate_csv
from .normalizer import DatabaseNormalizer, NormalizationResult, normalize_csv
from .sql import SqlGenerator
from .vocabulary import KeywordRule, Vocabulary

__version__ = "0.1.0"
