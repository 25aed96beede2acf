"""Static feature extraction from Python test files.

Structural metrics (complexity, nesting) come from the ``ast`` tree. The
flakiness signals are regex pattern families matched line by line, so
they still work on files that fail to parse; in that case structural
metrics fall back to keyword counts and indentation depth.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from ..exceptions import ErrorCode, FlakewatchIssue
from ..logging_config import get_logger
from .features import MetadataFeatures, StaticFeatures

logger = get_logger(__name__)


def _compile(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p) for p in patterns)


TIMING_PATTERNS = _compile(
    r"\btime\.sleep\(",
    r"\basyncio\.sleep\(",
    r"\btimeout\s*=",
    r"\bdatetime\.(?:now|utcnow|today)\(",
    r"\btime\.(?:time|monotonic|perf_counter)\(",
    r"\bwait_for\w*\(",
    r"\bWebDriverWait\(",
)

DELAY_PATTERNS = _compile(
    r"\bsleep\(\s*\d+(?:\.\d+)?\s*\)",
    r"\bwait_for_timeout\(\s*\d+",
    r"\bimplicitly_wait\(\s*\d+",
)

EXTERNAL_PATTERNS = _compile(
    r"\b(?:requests|httpx|aiohttp|urllib3?)\.",
    r"\bboto3\.",
    r"\bsmtplib\.",
    r"\bsocket\.socket\(",
    r"\bredis\.(?:Redis|StrictRedis)\(",
    r"https?://(?!localhost|127\.0\.0\.1)",
)

HTTP_PATTERNS = _compile(
    r"\b(?:requests|httpx|session|client)\.(?:get|post|put|patch|delete|head|request)\(",
    r"\burlopen\(",
    r"\baiohttp\.ClientSession\(",
)

FILE_SYSTEM_PATTERNS = _compile(
    r"\bopen\(",
    r"\bos\.(?:remove|unlink|rename|makedirs|mkdir|rmdir)\(",
    r"\bshutil\.\w+\(",
    r"\btempfile\.\w+\(",
    r"\.(?:write_text|read_text|write_bytes|read_bytes|unlink|mkdir)\(",
)

DATABASE_PATTERNS = _compile(
    r"\.execute(?:many)?\(",
    r"\.commit\(",
    r"\bsqlite3\.connect\(",
    r"\bpsycopg2?\.connect\(",
    r"\bsession\.query\(",
    r"\.objects\.\w+\(",
    r"\b(?:SELECT|INSERT|UPDATE|DELETE)\s+(?:\*|\w+|INTO|FROM)",
)

SHARED_STATE_PATTERNS = _compile(
    r"^\s*global\s+\w+",
    r"\bos\.environ\[[^\]]+\]\s*=",
    r"\bos\.environ\.(?:update|pop|setdefault)\(",
    r"\bsetattr\(",
    r"^\s*cls\.\w+\s*=",
    r"^[A-Z][A-Z0-9_]*\s*=\s*[\[{]",
)

RACE_PATTERNS = _compile(
    r"\bthreading\.Thread\(",
    r"\basyncio\.gather\(",
    r"\basyncio\.create_task\(",
    r"\bThreadPoolExecutor\(",
    r"\bmultiprocessing\.\w+\(",
)

LEAK_PATTERNS = _compile(
    r"=\s*open\(",
    r"=\s*socket\.socket\(",
    r"=\s*(?:sqlite3|psycopg2?)\.connect\(",
    r"\bsubprocess\.Popen\(",
)

TIMEOUT_PATTERN = re.compile(r"\btimeout\s*=")
AWAIT_PATTERN = re.compile(r"\bawait\b")
CHAIN_PATTERN = re.compile(r"\.(?:then|add_done_callback)\(")

SETUP_PATTERNS = _compile(
    r"def\s+(?:setUp|tearDown|setUpClass|tearDownClass|setUpModule|tearDownModule)\b",
    r"def\s+(?:setup_method|teardown_method|setup_class|teardown_class|setup_module|teardown_module)\b",
    r"@pytest\.fixture\b",
    r"@(?:pytest_asyncio\.)?fixture\b",
)

TEST_DEF = re.compile(r"^\s*(?:async\s+)?def\s+test\w*\s*\(", re.MULTILINE)

FRAMEWORK_MARKERS = (
    ("playwright", re.compile(r"\bplaywright\b")),
    ("selenium", re.compile(r"\bselenium\b|\bwebdriver\.")),
    ("pytest", re.compile(r"\bimport pytest\b|\bpytest\.|^\s*def test_", re.MULTILINE)),
    ("unittest", re.compile(r"\bunittest\b|\(\s*(?:unittest\.)?TestCase\s*\)")),
)

DECISION_KEYWORDS = ("if", "elif", "for", "while", "except", "with", "case", "and", "or")

_NESTING_NODES = (
    ast.If,
    ast.For,
    ast.AsyncFor,
    ast.While,
    ast.Try,
    ast.With,
    ast.AsyncWith,
) + ((ast.Match,) if hasattr(ast, "Match") else ())

_BRANCH_NODES = (
    ast.If,
    ast.For,
    ast.AsyncFor,
    ast.While,
    ast.IfExp,
    ast.ExceptHandler,
    ast.comprehension,
    ast.Assert,
) + ((ast.match_case,) if hasattr(ast, "match_case") else ())


@dataclass
class ExtractedFeatures:
    """Features of one file plus any problems met while extracting them."""

    file_path: str
    static: StaticFeatures
    metadata: MetadataFeatures
    issues: list[FlakewatchIssue] = field(default_factory=list)


def is_test_file(path: Union[str, Path]) -> bool:
    name = Path(path).name
    return name.endswith(".py") and (name.startswith("test_") or name.endswith("_test.py"))


def extract_features(
    source: str,
    file_path: str = "<memory>",
    file_age: Optional[float] = None,
    modification_frequency: Optional[float] = None,
    author_count: Optional[int] = None,
) -> ExtractedFeatures:
    """Extract static and metadata features from test source.

    Args:
        source: File content
        file_path: Path used for reporting only
        file_age: Days since the file was created, when known
        modification_frequency: Changes per month, when known
        author_count: Distinct authors, when known

    Returns:
        ExtractedFeatures; never raises for unparseable source.
    """
    issues: list[FlakewatchIssue] = []
    lines = [line for line in source.splitlines() if line.strip()]
    code_lines = [line for line in lines if not line.lstrip().startswith("#")]
    loc = len(code_lines)

    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        logger.warning(f"Could not parse {file_path} ({e.msg}), using regex fallback")
        issues.append(
            FlakewatchIssue(
                message=f"Could not parse {file_path}: {e.msg}",
                code=ErrorCode.FW400,
                context={"file": file_path, "line": e.lineno},
                recovery_hint="Structural metrics are estimated from keywords and indentation",
            )
        )
        tree = None

    if tree is not None:
        cyclomatic = _cyclomatic(tree)
        cognitive = _cognitive(tree)
        nesting = _max_nesting(tree)
    else:
        cyclomatic = _estimate_complexity("\n".join(code_lines))
        cognitive = cyclomatic
        nesting = _indent_nesting(code_lines)

    timing = _count(code_lines, TIMING_PATTERNS)
    delays = _count(code_lines, DELAY_PATTERNS)
    leaks = _count(code_lines, LEAK_PATTERNS)
    shared = _count(code_lines, SHARED_STATE_PATTERNS)
    setups = _count(code_lines, SETUP_PATTERNS)
    test_count = len(TEST_DEF.findall(source))

    static = StaticFeatures(
        cyclomatic_complexity=cyclomatic,
        cognitive_complexity=cognitive,
        nesting_depth=nesting,
        lines_of_code=loc,
        async_await_count=_count(code_lines, (AWAIT_PATTERN,)),
        promise_chain_count=_count(code_lines, (CHAIN_PATTERN,)),
        timeout_count=_count(code_lines, (TIMEOUT_PATTERN,)),
        http_call_count=_count(code_lines, HTTP_PATTERNS),
        file_system_count=_count(code_lines, FILE_SYSTEM_PATTERNS),
        database_query_count=_count(code_lines, DATABASE_PATTERNS),
        external_service_count=_count(code_lines, EXTERNAL_PATTERNS),
        setup_teardown_complexity=setups,
        shared_state_usage=shared,
        test_isolation_score=_isolation_score(shared, test_count),
        hardcoded_delays=delays,
        race_condition_patterns=_count(code_lines, RACE_PATTERNS),
        timing_sensitivity=(timing + delays) / loc if loc else 0.0,
        resource_leak_risk=leaks / loc if loc else 0.0,
    )
    metadata = MetadataFeatures(
        file_size=len(source.encode("utf-8")),
        test_count=test_count,
        test_framework=detect_framework(source),
        file_age=file_age,
        modification_frequency=modification_frequency,
        author_count=author_count,
        has_setup_teardown=setups > 0,
        dependency_count=_count_imports(tree, code_lines),
    )
    return ExtractedFeatures(file_path=file_path, static=static, metadata=metadata, issues=issues)


def extract_file(path: Union[str, Path], **metadata) -> ExtractedFeatures:
    """Read and extract one file. Raises OSError if it cannot be read."""
    path = Path(path)
    source = path.read_text(encoding="utf-8", errors="replace")
    extracted = extract_features(source, str(path), **metadata)
    if not is_test_file(path):
        extracted.issues.append(
            FlakewatchIssue(
                message=f"{path.name} does not follow test file naming",
                code=ErrorCode.FW401,
                context={"file": str(path)},
                recovery_hint="Name test modules test_*.py or *_test.py",
            )
        )
    return extracted


def detect_framework(source: str) -> Optional[str]:
    for name, marker in FRAMEWORK_MARKERS:
        if marker.search(source):
            return name
    return None


def _count(lines: list[str], patterns: tuple[re.Pattern, ...]) -> int:
    return sum(len(p.findall(line)) for line in lines for p in patterns)


def _isolation_score(violations: int, test_count: int) -> float:
    if test_count == 0:
        return 1.0
    return max(0.0, 1.0 - violations / test_count)


def _count_imports(tree: Optional[ast.AST], lines: list[str]) -> int:
    if tree is None:
        return sum(1 for line in lines if re.match(r"\s*(?:import|from)\s+\w", line))
    return sum(1 for node in ast.walk(tree) if isinstance(node, (ast.Import, ast.ImportFrom)))


# ── structural metrics ───────────────────────────────────────────────


def _cyclomatic(tree: ast.AST) -> int:
    """1 + decision points; each extra operand of and/or adds one."""
    points = 0
    for node in ast.walk(tree):
        if isinstance(node, _BRANCH_NODES):
            points += 1
        elif isinstance(node, ast.BoolOp):
            points += len(node.values) - 1
    return 1 + points


def _cognitive(tree: ast.AST) -> int:
    """Control structures cost 1 plus their nesting level."""
    total = 0

    def visit(node: ast.AST, level: int) -> None:
        nonlocal total
        for child in ast.iter_child_nodes(node):
            if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda)):
                visit(child, 0)
            elif isinstance(child, _NESTING_NODES) or isinstance(child, ast.ExceptHandler):
                total += 1 + level
                visit(child, level + 1)
            elif isinstance(child, ast.BoolOp):
                total += 1
                visit(child, level)
            else:
                visit(child, level)

    visit(tree, 0)
    return total


def _max_nesting(tree: ast.AST) -> int:
    def depth(node: ast.AST) -> int:
        deepest = 0
        for child in ast.iter_child_nodes(node):
            d = depth(child)
            if isinstance(child, _NESTING_NODES):
                d += 1
            deepest = max(deepest, d)
        return deepest

    return depth(tree)


def _estimate_complexity(content: str) -> int:
    decision_points = sum(len(re.findall(rf"\b{kw}\b", content)) for kw in DECISION_KEYWORDS)
    return 1 + decision_points


def _indent_nesting(lines: list[str]) -> int:
    # Function bodies sit one level in, so that level is not nesting.
    max_depth = 0
    for line in lines:
        stripped = line.lstrip()
        depth = (len(line) - len(stripped)) // 4
        max_depth = max(max_depth, depth)
    return max(0, max_depth - 1)
