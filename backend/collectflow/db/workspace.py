"""Workspace layout, id helpers and the default workflow seeded on init."""

import re
import uuid
from datetime import UTC, datetime
from pathlib import Path

from collectflow.config import WORKSPACE_DIR_NAME
from collectflow.models import (
    CollectionKindSchema,
    CollectionSchemaConfig,
    NodeType,
    WorkflowIndex,
    WorkflowNode,
    WorkflowRecord,
    WorkflowSummary,
    WorkflowVersionRecord,
)

DEFAULT_WORKFLOW_ID = "wf_default"
DEFAULT_VERSION_ID = "v1"
RUN_INPUT_KIND = "run_input"

GITIGNORE_MARKER = "# collectflow"
GITIGNORE_SNIPPET = f"""{GITIGNORE_MARKER}: runtime data; commit workflows/
{WORKSPACE_DIR_NAME}/runs/
{WORKSPACE_DIR_NAME}/events/
{WORKSPACE_DIR_NAME}/node-results/
{WORKSPACE_DIR_NAME}/collections/
{WORKSPACE_DIR_NAME}/data/
"""

_VERSION_RE = re.compile(r"^v(\d+)$")


def now_iso() -> str:
    """Current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


def generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def safe_name(name: str) -> str:
    """File-system safe form of a kind or record id."""
    return re.sub(r"[^A-Za-z0-9_-]", "_", name)


def version_number(version_id: str) -> int | None:
    match = _VERSION_RE.match(version_id)
    return int(match.group(1)) if match else None


class WorkspacePaths:
    """Every path inside a workspace directory."""

    def __init__(self, base: Path) -> None:
        self.base = base
        self.root = base / WORKSPACE_DIR_NAME

    @property
    def index_path(self) -> Path:
        return self.root / "workflows.json"

    @property
    def config_path(self) -> Path:
        return self.root / "config.json"

    @property
    def gitignore_path(self) -> Path:
        return self.base / ".gitignore"

    @property
    def workflows_dir(self) -> Path:
        return self.root / "workflows"

    @property
    def runs_dir(self) -> Path:
        return self.root / "runs"

    @property
    def events_dir(self) -> Path:
        return self.root / "events"

    @property
    def node_results_dir(self) -> Path:
        return self.root / "node-results"

    @property
    def collections_dir(self) -> Path:
        return self.root / "collections"

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def mutations_dir(self) -> Path:
        return self.root / "mutations"

    def directories(self) -> list[Path]:
        return [
            self.root,
            self.workflows_dir,
            self.runs_dir,
            self.events_dir,
            self.node_results_dir,
            self.collections_dir,
            self.data_dir,
            self.mutations_dir,
        ]

    def workflow_dir(self, workflow_id: str) -> Path:
        return self.workflows_dir / safe_name(workflow_id)

    def workflow_record_path(self, workflow_id: str) -> Path:
        return self.workflow_dir(workflow_id) / "workflow.json"

    def versions_dir(self, workflow_id: str) -> Path:
        return self.workflow_dir(workflow_id) / "versions"

    def version_path(self, workflow_id: str, version_id: str) -> Path:
        return self.versions_dir(workflow_id) / f"{safe_name(version_id)}.json"

    def collection_schema_path(self, workflow_id: str) -> Path:
        return self.workflow_dir(workflow_id) / "collection-schema.json"

    def run_path(self, run_id: str) -> Path:
        return self.runs_dir / f"{safe_name(run_id)}.json"

    def events_path(self, run_id: str) -> Path:
        return self.events_dir / f"{safe_name(run_id)}.ndjson"

    def run_node_results_dir(self, run_id: str) -> Path:
        return self.node_results_dir / safe_name(run_id)

    def node_result_path(self, run_id: str, node_result_id: str) -> Path:
        return self.run_node_results_dir(run_id) / f"{safe_name(node_result_id)}.json"

    def run_collections_dir(self, run_id: str) -> Path:
        return self.collections_dir / safe_name(run_id)

    def collection_path(self, run_id: str, kind: str) -> Path:
        return self.run_collections_dir(run_id) / f"{safe_name(kind)}.json"

    def global_collection_path(self, kind: str) -> Path:
        return self.data_dir / f"{safe_name(kind)}.json"

    def mutation_path(self, mutation_id: str) -> Path:
        return self.mutations_dir / f"{safe_name(mutation_id)}.json"


def default_workflow_version(now: str) -> WorkflowVersionRecord:
    """Three-step research workflow: gather sources, summarize, human review."""
    return WorkflowVersionRecord(
        workflow_id=DEFAULT_WORKFLOW_ID,
        version_id=DEFAULT_VERSION_ID,
        name=DEFAULT_VERSION_ID,
        created_at=now,
        nodes=[
            WorkflowNode(
                id="retrieve_sources",
                type=NodeType.PROMPT,
                input_collections=[RUN_INPUT_KIND],
                output_collections=["sources"],
                minimum_rows=5,
                prompt=(
                    "Retrieve relevant sources for the run input topic. Only use sources "
                    "you have actually opened; for each give a URL, a short title and an excerpt."
                ),
            ),
            WorkflowNode(
                id="synthesize_summary",
                type=NodeType.PROMPT,
                input_collections=["sources"],
                output_collections=["summary"],
                prompt=(
                    "Synthesize the sources into a concise markdown summary. "
                    "Do not add claims that are not present in the sources."
                ),
            ),
            WorkflowNode(
                id="human_review",
                type=NodeType.HUMAN_IN_THE_LOOP,
                input_collections=["summary"],
                output_collections=["approved_summary"],
                prompt="Review the summary and copy it, edited if needed, into approved_summary.",
            ),
        ],
    )


def default_workflow_record(now: str) -> WorkflowRecord:
    return WorkflowRecord(
        workflow_id=DEFAULT_WORKFLOW_ID,
        name="Default workflow",
        description="Example workflow demonstrating collection -> node -> collection flow.",
        current_version_id=DEFAULT_VERSION_ID,
        created_at=now,
    )


def default_workflow_index(now: str) -> WorkflowIndex:
    return WorkflowIndex(
        current_workflow_id=DEFAULT_WORKFLOW_ID,
        workflows=[
            WorkflowSummary(workflow_id=DEFAULT_WORKFLOW_ID, name="Default workflow", created_at=now)
        ],
    )


def default_collection_schema(workflow_id: str) -> CollectionSchemaConfig:
    """Only the run input kind is declared; other kinds are added by the caller."""
    return CollectionSchemaConfig(
        workflow_id=workflow_id,
        kinds={
            RUN_INPUT_KIND: CollectionKindSchema(
                description="The input a run was started with.",
                item_schema={"type": "object"},
            )
        },
    )


def append_gitignore_snippet(gitignore_path: Path) -> bool:
    """Append the runtime-data ignore block once. Returns True if written."""
    try:
        content = gitignore_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        content = ""
    if GITIGNORE_MARKER in content:
        return False
    prefix = "\n" if content and not content.endswith("\n") else ""
    with open(gitignore_path, "a", encoding="utf-8") as f:
        f.write(f"{prefix}\n{GITIGNORE_SNIPPET}")
    return True
