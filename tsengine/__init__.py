from .parser import parse_ts
from .evaluator import TSEvaluator, evaluate_ts
