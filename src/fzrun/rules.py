"""Runaway rule set and badness scoring.

The rule set is the minimal sum-of-products cover that espresso produces for
the truth table in ``rules.pla``. It is stored as data so it can be checked
against that table independently of the scoring code. Any change to the rules
goes through the table and the minimizer, then ``validate_cover()``.
"""

import itertools
from collections.abc import Mapping
from dataclasses import dataclass
from importlib import resources
from typing import NamedTuple

from fzrun.fuzzy import FuzzyValue, clamp, fuzzy_and, fuzzy_not, fuzzy_or, membership
from fzrun.models import ProcessInputs, ProcessSample

INPUT_NAMES = ("nice", "disowned", "mid_cpu", "mid_mem", "hi_cpu", "hi_mem")

# (width, center) of each triangular membership function
MID_CPU = (0.15, 0.30)
HI_CPU = (0.70, 1.0)
MID_MEM = (0.15, 0.15)
HI_MEM = (0.85, 1.0)

MAX_NICE = 20
INIT_PID = 1


class Literal(NamedTuple):
    """One input of a clause, optionally complemented."""

    name: str
    negated: bool = False

    def __str__(self) -> str:
        return f"!{self.name}" if self.negated else self.name


Clause = tuple[Literal, ...]

RULES: tuple[Clause, ...] = (
    (Literal("nice", negated=True), Literal("disowned"), Literal("mid_cpu")),
    (Literal("nice", negated=True), Literal("disowned"), Literal("mid_mem")),
    (Literal("hi_cpu"),),
    (Literal("hi_mem"),),
)


# ─────────────────────────────────────────────────────────────────────────────
# Fuzzification and scoring
# ─────────────────────────────────────────────────────────────────────────────


def nice_truth(nice: int | None) -> FuzzyValue:
    """Degree to which a process is niced. Unavailable or <= 0 is not niced."""
    if nice is None or nice <= 0:
        return 0.0
    return clamp(nice / MAX_NICE)


def fuzzify(sample: ProcessSample) -> ProcessInputs:
    """Turn raw process readings into the six rule inputs.

    CPU is clamped to one full core; memory is not clamped, so readings past
    100% fall off the triangles to 0 on their own.
    """
    cpu_ratio = min(sample.cpu_percent / 100, 1.0)
    mem_ratio = sample.mem_percent / 100
    return ProcessInputs(
        nice=nice_truth(sample.nice),
        disowned=1.0 if sample.ppid == INIT_PID else 0.0,
        mid_cpu=membership(*MID_CPU, cpu_ratio),
        mid_mem=membership(*MID_MEM, mem_ratio),
        hi_cpu=membership(*HI_CPU, cpu_ratio),
        hi_mem=membership(*HI_MEM, mem_ratio),
    )


def evaluate_clause(clause: Clause, values: Mapping[str, FuzzyValue]) -> FuzzyValue:
    """Fuzzy AND of a clause's literals."""
    return fuzzy_and(
        *(fuzzy_not(values[lit.name]) if lit.negated else values[lit.name] for lit in clause)
    )


def evaluate_rules(
    values: Mapping[str, FuzzyValue], rules: tuple[Clause, ...] = RULES
) -> FuzzyValue:
    """Fuzzy OR over all clauses."""
    return fuzzy_or(*(evaluate_clause(clause, values) for clause in rules))


def badness(inputs: ProcessInputs) -> FuzzyValue:
    """Badness score of one process."""
    return evaluate_rules(inputs.as_dict())


def clause_cube(clause: Clause) -> str:
    """Render a clause as a PLA cube, e.g. ``011---``."""
    bits = dict.fromkeys(INPUT_NAMES, "-")
    for lit in clause:
        bits[lit.name] = "0" if lit.negated else "1"
    return "".join(bits[name] for name in INPUT_NAMES)


def format_clause(clause: Clause) -> str:
    """Human-readable conjunction."""
    return " & ".join(str(lit) for lit in clause)


# ─────────────────────────────────────────────────────────────────────────────
# Truth table (espresso PLA)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class TruthTable:
    """Parsed PLA truth table with a single output."""

    inputs: tuple[str, ...]
    output: str
    rows: list[tuple[str, str]]  # (input cube, output bit)


@dataclass(frozen=True)
class Mismatch:
    """A truth-table minterm the rule cover gets wrong."""

    minterm: str
    expected: int
    actual: int


def parse_pla(text: str) -> TruthTable:
    """Parse an espresso PLA with one output.

    Supports ``.i``, ``.o``, ``.ilb``, ``.ob``, ``.p``, ``.type`` and ``.e``.
    Input labels default to ``INPUT_NAMES`` when ``.ilb`` is absent.

    Raises:
        ValueError: On malformed directives or rows.
    """
    n_inputs: int | None = None
    labels: tuple[str, ...] | None = None
    output = "out"
    rows: list[tuple[str, str]] = []

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        if line.startswith("."):
            key, _, rest = line.partition(" ")
            rest = rest.strip()
            if key == ".i":
                n_inputs = int(rest)
            elif key == ".o":
                if int(rest) != 1:
                    raise ValueError(f"line {lineno}: only single-output tables are supported")
            elif key == ".ilb":
                labels = tuple(rest.split())
            elif key == ".ob":
                output = rest
            elif key == ".e":
                break
            # .p and .type carry nothing we need
            continue

        parts = line.split()
        if len(parts) != 2:
            raise ValueError(f"line {lineno}: expected '<inputs> <output>', got {raw!r}")
        cube, bit = parts
        if set(cube) - set("01-") or bit not in ("0", "1", "-"):
            raise ValueError(f"line {lineno}: invalid row {raw!r}")
        rows.append((cube, bit))

    if n_inputs is None:
        raise ValueError("missing .i directive")
    if labels is None:
        labels = INPUT_NAMES
    if len(labels) != n_inputs:
        raise ValueError(f".ilb names {len(labels)} inputs but .i declares {n_inputs}")
    for cube, _ in rows:
        if len(cube) != n_inputs:
            raise ValueError(f"row {cube!r} does not have {n_inputs} inputs")

    return TruthTable(inputs=labels, output=output, rows=rows)


def load_truth_table() -> TruthTable:
    """Load the truth table shipped with the package."""
    text = resources.files("fzrun").joinpath("rules.pla").read_text(encoding="utf-8")
    return parse_pla(text)


def _expand(cube: str):
    """Yield every minterm a cube with don't-cares covers."""
    choices = [("0", "1") if c == "-" else (c,) for c in cube]
    for combo in itertools.product(*choices):
        yield "".join(combo)


def validate_cover(table: TruthTable, rules: tuple[Clause, ...] = RULES) -> list[Mismatch]:
    """Check the rule cover against every crisp row of a truth table.

    Returns:
        Minterms where the cover disagrees with the table. Empty means the
        cover implements the table exactly.

    Raises:
        ValueError: If the table's inputs don't match the rule inputs.
    """
    if set(table.inputs) != set(INPUT_NAMES):
        raise ValueError(f"table inputs {table.inputs} don't match rule inputs {INPUT_NAMES}")

    mismatches: list[Mismatch] = []
    for cube, bit in table.rows:
        if bit == "-":
            continue
        expected = int(bit)
        for minterm in _expand(cube):
            values = {name: float(b) for name, b in zip(table.inputs, minterm)}
            actual = int(evaluate_rules(values, rules))
            if actual != expected:
                mismatches.append(Mismatch(minterm=minterm, expected=expected, actual=actual))
    return mismatches
