from .parser import parse_hcl
from .evaluator import HCLEvaluator, evaluate_hcl
