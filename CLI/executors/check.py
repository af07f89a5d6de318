import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from hclengine import evaluate_hcl
from resource_graph.equivalence import DEFAULT_MAX_RESOURCES, DEFAULT_STEP_BUDGET, EquivalenceResult, compare
from resource_graph.errors import ParityError
from resource_graph.model import ResourceGraph
from resource_graph.provider import ProviderSchema
from tsengine import evaluate_ts

logger = logging.getLogger(__name__)

HCL_SUFFIXES = ('.tf', '.hcl')
TARGET_SUFFIXES = ('.ts', '.js')


def language_of(path: Union[str, Path]) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in HCL_SUFFIXES:
        return 'hcl'
    if suffix in TARGET_SUFFIXES:
        return 'target'
    raise ValueError(f"Cannot tell the language of {path}; expected one of {HCL_SUFFIXES + TARGET_SUFFIXES}")


def evaluate_source(source: str, language: str, bindings: Optional[Dict[str, Any]] = None,
                    provider_schema: Optional[ProviderSchema] = None,
                    file: Optional[str] = None) -> ResourceGraph:
    evaluate = evaluate_hcl if language == 'hcl' else evaluate_ts
    try:
        return evaluate(source, bindings, provider_schema, file)
    except ParityError as e:
        raise e.with_file(file) if file else e


def evaluate_file(path: Union[str, Path], bindings: Optional[Dict[str, Any]] = None,
                  provider_schema: Optional[ProviderSchema] = None) -> ResourceGraph:
    path = Path(path)
    return evaluate_source(path.read_text(), language_of(path), bindings, provider_schema, str(path))


def check_sources(hcl_source: str, target_source: str,
                  bindings: Optional[Dict[str, Any]] = None,
                  provider_schema: Optional[ProviderSchema] = None,
                  max_resources: int = DEFAULT_MAX_RESOURCES,
                  step_budget: int = DEFAULT_STEP_BUDGET,
                  deadline: Optional[float] = None,
                  compare_outputs: bool = False,
                  hcl_file: Optional[str] = None,
                  target_file: Optional[str] = None) -> EquivalenceResult:
    """Evaluate both programs on two worker threads, then compare their graphs"""
    bindings = dict(bindings or {})
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix='tfparity') as pool:
        hcl_future = pool.submit(evaluate_source, hcl_source, 'hcl', bindings, provider_schema, hcl_file)
        target_future = pool.submit(evaluate_source, target_source, 'target', bindings, provider_schema, target_file)
        hcl_graph = hcl_future.result()
        target_graph = target_future.result()
    logger.info("Comparing %d HCL resources with %d target resources", len(hcl_graph), len(target_graph))
    return compare(hcl_graph, target_graph, max_resources, step_budget, deadline, compare_outputs)


class ParityCheckExecutor:
    """Runs a full check of one HCL file against one target program"""

    def __init__(self, hcl_file: str, target_file: str, bindings: Optional[Dict[str, Any]] = None,
                 provider_schema: Optional[ProviderSchema] = None, console: Optional[Console] = None):
        self.hcl_file = Path(hcl_file)
        self.target_file = Path(target_file)
        self.bindings = bindings or {}
        self.provider_schema = provider_schema
        self.console = console or Console(stderr=True)

    def execute_check(self, max_resources: int = DEFAULT_MAX_RESOURCES,
                      step_budget: int = DEFAULT_STEP_BUDGET,
                      deadline: Optional[float] = None,
                      compare_outputs: bool = False) -> Tuple[EquivalenceResult, float]:
        """Returns the comparison result and the elapsed wall-clock seconds"""
        if language_of(self.hcl_file) != 'hcl':
            raise ValueError(f"{self.hcl_file} is not an HCL file")
        if language_of(self.target_file) != 'target':
            raise ValueError(f"{self.target_file} is not a TypeScript or JavaScript program")
        started = time.monotonic()
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True,
        ) as progress:
            task = progress.add_task("Evaluating and comparing resource graphs...", total=None)
            result = check_sources(
                self.hcl_file.read_text(),
                self.target_file.read_text(),
                self.bindings,
                self.provider_schema,
                max_resources,
                step_budget,
                deadline,
                compare_outputs,
                hcl_file=str(self.hcl_file),
                target_file=str(self.target_file),
            )
            progress.update(task, completed=True)
        return result, time.monotonic() - started
