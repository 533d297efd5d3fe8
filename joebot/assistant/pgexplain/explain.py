"""EXPLAIN (ANALYZE, FORMAT JSON) parser and text renderer.

Parsing follows the JSON layout PostgreSQL emits; derived values (actual
per-node duration and cost, planner estimate factors, outlier flags) are
computed once after parsing.

Based on gocmdpev by Simon Engledew.
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from joebot.assistant.util.text import format_milliseconds

NA = "N/A"
BLOCK_SIZE = 8 * 1024

# -- Node types --------------------------------------------------------------

LIMIT = "Limit"
APPEND = "Append"
SORT = "Sort"
NESTED_LOOP = "Nested Loop"
MERGE_JOIN = "Merge Join"
HASH = "Hash"
HASH_JOIN = "Hash Join"
AGGREGATE = "Aggregate"
SEQ_SCAN = "Seq Scan"
INDEX_SCAN = "Index Scan"
INDEX_ONLY_SCAN = "Index Only Scan"
BITMAP_HEAP_SCAN = "Bitmap Heap Scan"
BITMAP_INDEX_SCAN = "Bitmap Index Scan"
CTE_SCAN = "CTE Scan"
FUNCTION_SCAN = "Function Scan"
SUBQUERY_SCAN = "Subquery Scan"
VALUES_SCAN = "Values Scan"
MODIFY_TABLE = "ModifyTable"

ESTIMATE_OVER = "Over"
ESTIMATE_UNDER = "Under"


class ExplainError(ValueError):
    """The EXPLAIN output could not be parsed."""


class _PlanModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Trigger(_PlanModel):
    name: str = Field("", alias="Trigger Name")
    constraint_name: str = Field("", alias="Constraint Name")
    relation: str = Field("", alias="Relation")
    time: float = Field(0.0, alias="Time")
    calls: int = Field(0, alias="Calls")


class Plan(_PlanModel):
    plans: list[Plan] = Field(default_factory=list, alias="Plans")

    # Buffers
    shared_hit_blocks: int = Field(0, alias="Shared Hit Blocks")
    shared_read_blocks: int = Field(0, alias="Shared Read Blocks")
    shared_dirtied_blocks: int = Field(0, alias="Shared Dirtied Blocks")
    shared_written_blocks: int = Field(0, alias="Shared Written Blocks")
    local_hit_blocks: int = Field(0, alias="Local Hit Blocks")
    local_read_blocks: int = Field(0, alias="Local Read Blocks")
    local_dirtied_blocks: int = Field(0, alias="Local Dirtied Blocks")
    local_written_blocks: int = Field(0, alias="Local Written Blocks")
    temp_read_blocks: int = Field(0, alias="Temp Read Blocks")
    temp_written_blocks: int = Field(0, alias="Temp Written Blocks")
    io_read_time: float | None = Field(None, alias="I/O Read Time")
    io_write_time: float | None = Field(None, alias="I/O Write Time")

    # Actuals and estimates
    actual_loops: int = Field(0, alias="Actual Loops")
    actual_rows: int = Field(0, alias="Actual Rows")
    actual_startup_time: float = Field(0.0, alias="Actual Startup Time")
    actual_total_time: float = Field(0.0, alias="Actual Total Time")
    plan_rows: int = Field(0, alias="Plan Rows")
    plan_width: int = Field(0, alias="Plan Width")
    startup_cost: float = Field(0.0, alias="Startup Cost")
    total_cost: float = Field(0.0, alias="Total Cost")

    # WAL
    wal_records: int = Field(0, alias="WAL Records")
    wal_fpi: int = Field(0, alias="WAL FPI")
    wal_bytes: int = Field(0, alias="WAL Bytes")

    # Node details
    alias: str = Field("", alias="Alias")
    cte_name: str = Field("", alias="CTE Name")
    filter: str = Field("", alias="Filter")
    function_name: str = Field("", alias="Function Name")
    group_key: list[str] = Field(default_factory=list, alias="Group Key")
    hash_batches: int = Field(0, alias="Hash Batches")
    hash_buckets: int = Field(0, alias="Hash Buckets")
    hash_condition: str = Field("", alias="Hash Cond")
    heap_fetches: int = Field(0, alias="Heap Fetches")
    index_condition: str = Field("", alias="Index Cond")
    index_name: str = Field("", alias="Index Name")
    merge_condition: str = Field("", alias="Merge Cond")
    join_type: str = Field("", alias="Join Type")
    node_type: str = Field("", alias="Node Type")
    operation: str = Field("", alias="Operation")
    output: list[str] = Field(default_factory=list, alias="Output")
    parallel_aware: bool = Field(False, alias="Parallel Aware")
    parent_relationship: str = Field("", alias="Parent Relationship")
    peak_memory_usage: int = Field(0, alias="Peak Memory Usage")
    relation_name: str = Field("", alias="Relation Name")
    rows_removed_by_filter: int = Field(0, alias="Rows Removed by Filter")
    rows_removed_by_index_recheck: int = Field(0, alias="Rows Removed by Index Recheck")
    scan_direction: str = Field("", alias="Scan Direction")
    schema_: str = Field("", alias="Schema")
    sort_key: list[str] = Field(default_factory=list, alias="Sort Key")
    sort_method: str = Field("", alias="Sort Method")
    sort_space_type: str = Field("", alias="Sort Space Type")
    sort_space_used: int = Field(0, alias="Sort Space Used")
    strategy: str = Field("", alias="Strategy")
    subplan_name: str = Field("", alias="Subplan Name")
    workers_launched: int = Field(0, alias="Workers Launched")
    workers_planned: int = Field(0, alias="Workers Planned")

    # Derived
    actual_cost: float = 0.0
    actual_duration: float = 0.0
    costliest: bool = False
    largest: bool = False
    slowest: bool = False
    planner_row_estimate_direction: str = ""
    planner_row_estimate_factor: float = 0.0


class Explain(_PlanModel):
    plan: Plan = Field(alias="Plan")
    triggers: list[Trigger] = Field(default_factory=list, alias="Triggers")
    query_identifier: int = Field(0, alias="Query Identifier")
    settings: dict[str, str] = Field(default_factory=dict, alias="Settings")
    planning_time: float = Field(0.0, alias="Planning Time")
    execution_time: float = Field(0.0, alias="Execution Time")

    # Derived
    total_time: float = 0.0
    total_cost: float = 0.0
    shared_hit_blocks: int = 0
    shared_read_blocks: int = 0
    shared_dirtied_blocks: int = 0
    shared_written_blocks: int = 0
    local_hit_blocks: int = 0
    local_read_blocks: int = 0
    local_dirtied_blocks: int = 0
    local_written_blocks: int = 0
    temp_read_blocks: int = 0
    temp_written_blocks: int = 0
    io_read_time: float | None = None
    io_write_time: float | None = None
    actual_rows: int = 0
    max_rows: int = 0
    max_cost: float = 0.0
    max_duration: float = 0.0
    contains_seq_scan: bool = False

    estimation_time: str = ""
    """Production timing estimate appended to the ``Time`` line of the stats."""

    # -- Processing ------------------------------------------------------------

    def _process(self) -> None:
        root = self.plan
        self.actual_rows = root.actual_rows
        for name in (
            "shared_hit_blocks",
            "shared_read_blocks",
            "shared_dirtied_blocks",
            "shared_written_blocks",
            "local_hit_blocks",
            "local_read_blocks",
            "local_dirtied_blocks",
            "local_written_blocks",
            "temp_read_blocks",
            "temp_written_blocks",
            "io_read_time",
            "io_write_time",
        ):
            setattr(self, name, getattr(root, name))
        self.total_time = self.planning_time + self.execution_time

        self._process_plan(root)
        self._mark_outliers(root)

    def _process_plan(self, plan: Plan) -> None:
        self.contains_seq_scan = self.contains_seq_scan or plan.node_type == SEQ_SCAN
        _planner_estimate(plan)
        self._actuals(plan)

        self.max_rows = max(self.max_rows, plan.actual_rows)
        self.max_cost = max(self.max_cost, plan.actual_cost)
        self.max_duration = max(self.max_duration, plan.actual_duration)

        for child in plan.plans:
            self._process_plan(child)

    def _actuals(self, plan: Plan) -> None:
        duration = plan.actual_total_time
        cost = plan.total_cost
        for child in plan.plans:
            if child.node_type != CTE_SCAN:
                duration -= child.actual_total_time
                cost -= child.total_cost

        plan.actual_cost = max(cost, 0.0)
        self.total_cost += plan.actual_cost
        plan.actual_duration = duration * plan.actual_loops

    def _mark_outliers(self, plan: Plan) -> None:
        plan.costliest = plan.actual_cost == self.max_cost
        plan.largest = plan.actual_rows == self.max_rows
        plan.slowest = plan.actual_duration == self.max_duration
        for child in plan.plans:
            self._mark_outliers(child)

    # -- Rendering -------------------------------------------------------------

    def render_plan_text(self, *, with_costs: bool = True) -> str:
        out: list[str] = []
        _write_plan(out, self.plan, " ", 0, with_costs)

        for trigger in self.triggers:
            out.append(
                f"Trigger {trigger.name} for constraint {trigger.constraint_name}: "
                f"time={trigger.time:.3f} calls={trigger.calls}\n"
            )
        if self.settings:
            settings = ", ".join(f"{key} = '{value}'" for key, value in self.settings.items())
            out.append(f"Settings: {settings}\n")
        if with_costs and self.query_identifier:
            out.append(f"Query ID: {self.query_identifier}\n")
        return "".join(out)

    def render_stats(self) -> str:
        out = [
            f"\nTime: {format_milliseconds(self.total_time)}{self.estimation_time}\n",
            f"  - planning: {format_milliseconds(self.planning_time)}\n",
            f"  - execution: {format_milliseconds(self.execution_time)}\n",
            f"    - I/O read: {_ms_or_na(self.io_read_time)}\n",
            f"    - I/O write: {_ms_or_na(self.io_write_time)}\n",
            "\nShared buffers:\n",
            _blocks("hits", self.shared_hit_blocks, "from the buffer pool"),
            _blocks("reads", self.shared_read_blocks, "from the OS file cache, including disk I/O"),
            _blocks("dirtied", self.shared_dirtied_blocks),
            _blocks("writes", self.shared_written_blocks),
        ]

        local = (
            ("hits", self.local_hit_blocks),
            ("reads", self.local_read_blocks),
            ("dirtied", self.local_dirtied_blocks),
            ("writes", self.local_written_blocks),
        )
        if any(blocks for _, blocks in local):
            out.append("\nLocal buffers:\n")
            out.extend(_blocks(name, blocks) for name, blocks in local if blocks)

        temp = (("reads", self.temp_read_blocks), ("writes", self.temp_written_blocks))
        if any(blocks for _, blocks in temp):
            out.append("\nTemp buffers:\n")
            out.extend(_blocks(name, blocks) for name, blocks in temp if blocks)

        return "".join(out)


def parse_explain(explain_json: str) -> Explain:
    """Parse the output of ``EXPLAIN (..., FORMAT JSON)``; only the first statement is used."""
    try:
        explains = json.loads(explain_json)
    except ValueError as e:
        msg = f"failed to parse explain: {e}"
        raise ExplainError(msg) from e

    if not isinstance(explains, list) or not explains:
        msg = "Empty explain"
        raise ExplainError(msg)

    try:
        explain = Explain.model_validate(explains[0])
    except PydanticValidationError as e:
        msg = f"failed to parse explain: {e}"
        raise ExplainError(msg) from e

    explain._process()
    return explain


# -- Helpers -----------------------------------------------------------------


def _planner_estimate(plan: Plan) -> None:
    plan.planner_row_estimate_factor = 0.0
    if plan.plan_rows == plan.actual_rows:
        return

    plan.planner_row_estimate_direction = ESTIMATE_UNDER
    if plan.plan_rows:
        plan.planner_row_estimate_factor = plan.actual_rows / plan.plan_rows

    if plan.planner_row_estimate_factor < 1.0:
        plan.planner_row_estimate_factor = 0.0
        plan.planner_row_estimate_direction = ESTIMATE_OVER
        if plan.actual_rows:
            plan.planner_row_estimate_factor = plan.plan_rows / plan.actual_rows


def _write_plan(out: list[str], plan: Plan, prefix: str, depth: int, with_costs: bool) -> None:
    current = prefix
    subplan_prefix = ""

    def emit(line: str) -> None:
        out.append(f"{current}{line}\n")

    if plan.subplan_name:
        emit(plan.subplan_name)
        subplan_prefix = "  "
        depth += 1

    if depth:
        current = prefix + subplan_prefix + "->  "
    emit(_caption(plan, with_costs))

    current = prefix + "  "
    if depth:
        current = prefix + subplan_prefix + "      "
    _write_details(emit, plan)

    for child in plan.plans:
        _write_plan(out, child, current, depth + 1, with_costs)


def _caption(plan: Plan, with_costs: bool) -> str:
    costs = ""
    if with_costs:
        costs = (
            f"  (cost={plan.startup_cost:.2f}..{plan.total_cost:.2f} rows={plan.plan_rows} width={plan.plan_width})"
            f" (actual time={plan.actual_startup_time:.3f}..{plan.actual_total_time:.3f} "
            f"rows={plan.actual_rows} loops={plan.actual_loops})"
        )

    using = f" using {plan.index_name}" if plan.index_name else ""

    on = ""
    name = plan.relation_name or plan.cte_name
    if name:
        on = f" on {plan.schema_}.{name}" if plan.schema_ else f" on {name}"
        if plan.alias and plan.alias != name:
            on += f" {plan.alias}"

    node_type = plan.node_type
    if node_type == MODIFY_TABLE:
        node_type = plan.operation
    elif node_type == VALUES_SCAN:
        on = f' on "{plan.alias}"'
    elif node_type == FUNCTION_SCAN:
        on = f" on {plan.function_name} {plan.alias}"
    elif node_type == SUBQUERY_SCAN:
        node_type = f"{plan.node_type} on {plan.alias}"
    elif node_type == MERGE_JOIN and plan.join_type != "Inner":
        node_type = f"Merge {plan.join_type} Join"
    elif node_type == HASH_JOIN and plan.join_type != "Inner":
        node_type = f"Hash {plan.join_type} Join"
    elif node_type == AGGREGATE and plan.strategy == "Hashed":
        node_type = f"Hash{AGGREGATE}"
    elif node_type == NESTED_LOOP and plan.join_type != "Inner":
        node_type = f"{plan.node_type} {plan.join_type} Join"

    parallel = "Parallel " if plan.parallel_aware else ""
    details = f" {plan.scan_direction}" if plan.scan_direction and plan.scan_direction != "Forward" else ""
    return f"{parallel}{node_type}{details}{using}{on}{costs}"


def _write_details(emit: Callable[[str], None], plan: Plan) -> None:
    if plan.sort_key:
        emit(f"Sort Key: {', '.join(plan.sort_key)}")

    if plan.sort_method or plan.sort_space_type:
        parts = []
        if plan.sort_method:
            parts.append(f"Sort Method: {plan.sort_method}")
        if plan.sort_space_type:
            parts.append(f"{plan.sort_space_type}: {plan.sort_space_used}kB")
        emit("  ".join(parts))

    if plan.group_key:
        emit(f"Group Key: {', '.join(plan.group_key)}")
    if plan.hash_buckets:
        emit(f"Buckets: {plan.hash_buckets}  Batches: {plan.hash_batches}  Memory Usage: {plan.peak_memory_usage}kB")
    if plan.index_condition:
        emit(f"Index Cond: {plan.index_condition}")
    if plan.merge_condition:
        emit(f"Merge Cond: {plan.merge_condition}")
    if plan.node_type == INDEX_ONLY_SCAN:
        emit(f"Heap Fetches: {plan.heap_fetches}")
    if plan.hash_condition:
        emit(f"Hash Cond: {plan.hash_condition}")
    if plan.filter:
        emit(f"Filter: {plan.filter}")
        emit(f"Rows Removed by Filter: {plan.rows_removed_by_filter}")
    if plan.workers_planned:
        emit(f"Workers Planned: {plan.workers_planned}")
        emit(f"Workers Launched: {plan.workers_launched}")

    buffers = [
        part
        for part in (
            _buffers(
                "shared",
                plan.shared_hit_blocks,
                plan.shared_read_blocks,
                plan.shared_dirtied_blocks,
                plan.shared_written_blocks,
            ),
            _buffers(
                "local",
                plan.local_hit_blocks,
                plan.local_read_blocks,
                plan.local_dirtied_blocks,
                plan.local_written_blocks,
            ),
        )
        if part
    ]
    if buffers:
        emit(f"Buffers: {' '.join(buffers)}")

    if plan.wal_records or plan.wal_fpi or plan.wal_bytes:
        emit(f"WAL: records={plan.wal_records} fpi={plan.wal_fpi} bytes={plan.wal_bytes}")

    io_timing = ""
    if plan.io_read_time is not None:
        io_timing += f" read={plan.io_read_time:.3f}"
    if plan.io_write_time is not None:
        io_timing += f" write={plan.io_write_time:.3f}"
    if io_timing:
        emit(f"I/O Timings:{io_timing}")


def _buffers(kind: str, hit: int, read: int, dirtied: int, written: int) -> str:
    if not (hit or read or dirtied or written):
        return ""
    parts = [kind]
    for name, value in (("hit", hit), ("read", read), ("dirtied", dirtied), ("written", written)):
        if value:
            parts.append(f"{name}={value}")
    return " ".join(parts)


def _ms_or_na(value: float | None) -> str:
    return NA if value is None else format_milliseconds(value)


def _blocks(name: str, blocks: int, comment: str = "") -> str:
    comment = f" {comment}" if comment else ""
    if not blocks:
        return f"  - {name}: 0{comment}\n"
    return f"  - {name}: {blocks} (~{blocks_to_bytes(blocks)}){comment}\n"


_SIZES = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


def blocks_to_bytes(blocks: int) -> str:
    """Human readable size of ``blocks`` 8 KiB pages, e.g. ``"8.0 KiB"``, ``"78 MiB"``."""
    size = blocks * BLOCK_SIZE
    if size < 10:
        return f"{size} B"

    exp = min(int(math.floor(math.log(size, 1024))), len(_SIZES) - 1)
    value = math.floor(size / 1024**exp * 10 + 0.5) / 10
    fmt = "{:.1f} {}" if value < 10 else "{:.0f} {}"
    return fmt.format(value, _SIZES[exp])
