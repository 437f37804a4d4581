"""WorkspaceStore - file-backed persistence for a collectflow workspace.

Every document is a JSON file under ``<workspace>/.collectflow``. Whole
documents are replaced atomically; event logs are append-only NDJSON.
Read-modify-write sequences on collections, runs and mutations are
serialized with per-key asyncio locks owned by the store instance.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from collectflow.db.files import append_line, read_json, read_lines, write_json_atomic
from collectflow.db.locks import KeyedLocks
from collectflow.db.workspace import (
    WorkspacePaths,
    append_gitignore_snippet,
    default_collection_schema,
    default_workflow_index,
    default_workflow_record,
    default_workflow_version,
    generate_id,
    now_iso,
    version_number,
)
from collectflow.errors import (
    InvalidTransitionError,
    MutationNotFoundError,
    NodeNotFoundError,
    RecordUpdateError,
    RunNotFoundError,
    SchemaValidationError,
    WorkflowNotFoundError,
    WorkflowValidationError,
    WorkflowVersionNotFoundError,
    WorkspaceNotInitializedError,
)
from collectflow.models import (
    SYSTEM_FIELDS,
    CollectionSchemaConfig,
    CollectionStore,
    EventRecord,
    GlobalEntityStore,
    MutationRecord,
    MutationStatus,
    NodeResultRecord,
    Provenance,
    RunRecord,
    RunStatus,
    WorkflowIndex,
    WorkflowNode,
    WorkflowRecord,
    WorkflowSummary,
    WorkflowVersionRecord,
    compact_dump,
)
from collectflow.services.graph_validator import (
    build_version_record,
    validate_workflow_version,
)
from collectflow.services.schema_registry import ROOT_PATH, FieldDiagnostic, SchemaRegistry

logger = logging.getLogger(__name__)

_Record = TypeVar("_Record", bound=BaseModel)
_Status = TypeVar("_Status", bound=Enum)


def _merge_update(record: _Record, fields: dict[str, Any], record_id: str) -> _Record:
    """Copy of ``record`` with ``fields`` applied. Unknown names and bad values raise."""
    model = type(record)
    unknown = sorted(set(fields) - set(model.model_fields))
    if unknown:
        raise RecordUpdateError(
            f"{model.__name__} {record_id} has no field(s): {', '.join(unknown)}",
            details={"record_id": record_id, "unknown_fields": unknown},
        )
    try:
        return model.model_validate({**record.model_dump(), **fields})
    except ValidationError as e:
        errors = [
            {"path": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise RecordUpdateError(
            f"Invalid update for {model.__name__} {record_id}",
            details={"record_id": record_id, "errors": errors},
        ) from e


def _coerce_status(status_type: type[_Status], value: Any, record_id: str) -> _Status:
    try:
        return status_type(value)
    except ValueError:
        allowed = [s.value for s in status_type]
        raise RecordUpdateError(
            f"Invalid status for {record_id}: {value!r}",
            details={"record_id": record_id, "status": str(value), "allowed": allowed},
        ) from None


def _split_item(kind: str, raw: Any, index: int | None = None) -> tuple[dict, dict]:
    """Separate store-assigned fields from the user payload."""
    if not isinstance(raw, dict):
        raise SchemaValidationError(
            kind, [FieldDiagnostic(ROOT_PATH, "item must be a JSON object")], index=index
        )
    system = {key: raw[key] for key in SYSTEM_FIELDS if key in raw}
    payload = {key: value for key, value in raw.items() if key not in SYSTEM_FIELDS}
    return system, payload


def _build_item(
    payload: dict[str, Any],
    system: dict[str, Any],
    now: str,
    provenance: Provenance | None = None,
    run_id: str | None = None,
    item_id: str | None = None,
) -> dict[str, Any]:
    item: dict[str, Any] = {
        "id": item_id or system.get("id") or generate_id("col"),
        "created_at": system.get("created_at") or now,
    }
    for key in ("created_by_node_id", "created_by_node_result_id"):
        value = getattr(provenance, key) if provenance is not None else None
        value = value or system.get(key)
        if value:
            item[key] = value
    if run_id is not None:
        item["run_id"] = run_id
    item.update(payload)
    return item


class WorkspaceStore:
    """Persistence for workflows, runs, events, node results, collections and mutations."""

    def __init__(self, base_path: Path | str, schema_registry: SchemaRegistry | None = None):
        """Initialize the store.

        Args:
            base_path: Directory containing (or that will contain) ``.collectflow``.
            schema_registry: Validator cache; a fresh one is created if omitted.
        """
        self.paths = WorkspacePaths(Path(base_path))
        self.schemas = schema_registry or SchemaRegistry()
        self.locks = KeyedLocks()

    # ==================== Workspace ====================

    def workspace_exists(self) -> bool:
        return self.paths.index_path.is_file()

    def _require_workspace(self) -> None:
        if not self.workspace_exists():
            raise WorkspaceNotInitializedError(
                f"No collectflow workspace found at {self.paths.base}. Initialize it first.",
                details={"path": str(self.paths.base)},
            )

    async def init_workspace(self, force: bool = False, add_gitignore: bool = True) -> WorkflowIndex:
        """Create the workspace layout and seed the default workflow.

        Existing documents are kept unless ``force`` is set.
        """
        for directory in self.paths.directories():
            directory.mkdir(parents=True, exist_ok=True)

        if force or not self.workspace_exists():
            now = now_iso()
            version = default_workflow_version(now)
            record = default_workflow_record(now)
            await write_json_atomic(
                self.paths.version_path(version.workflow_id, version.version_id),
                version.to_document(),
            )
            await write_json_atomic(
                self.paths.collection_schema_path(record.workflow_id),
                default_collection_schema(record.workflow_id).to_document(),
            )
            self.schemas.invalidate(record.workflow_id)
            await write_json_atomic(
                self.paths.workflow_record_path(record.workflow_id), compact_dump(record)
            )
            await write_json_atomic(
                self.paths.index_path, default_workflow_index(now).model_dump(mode="json")
            )
            logger.info(f"Initialized workspace at {self.paths.root}")

        if add_gitignore and append_gitignore_snippet(self.paths.gitignore_path):
            logger.info(f"Added runtime paths to {self.paths.gitignore_path}")

        return await self.read_workflow_index()

    # ==================== Workflows ====================

    async def read_workflow_index(self) -> WorkflowIndex:
        self._require_workspace()
        return WorkflowIndex.model_validate(await read_json(self.paths.index_path))

    async def write_workflow_index(self, index: WorkflowIndex) -> None:
        self._require_workspace()
        await write_json_atomic(self.paths.index_path, index.model_dump(mode="json"))

    async def list_workflows(self) -> list[WorkflowRecord]:
        index = await self.read_workflow_index()
        return [await self.read_workflow_record(w.workflow_id) for w in index.workflows]

    async def read_workflow_record(self, workflow_id: str) -> WorkflowRecord:
        self._require_workspace()
        try:
            data = await read_json(self.paths.workflow_record_path(workflow_id))
        except FileNotFoundError:
            raise WorkflowNotFoundError(workflow_id) from None
        return WorkflowRecord.model_validate(data)

    async def write_workflow_record(self, record: WorkflowRecord) -> None:
        self._require_workspace()
        await write_json_atomic(self.paths.workflow_record_path(record.workflow_id), compact_dump(record))

    async def get_current_workflow_id(self) -> str:
        index = await self.read_workflow_index()
        if not index.current_workflow_id:
            raise WorkflowNotFoundError("(current)")
        return index.current_workflow_id

    async def set_current_workflow(self, workflow_id: str) -> None:
        await self.read_workflow_record(workflow_id)
        async with self.locks.get("index"):
            index = await self.read_workflow_index()
            index.current_workflow_id = workflow_id
            await self.write_workflow_index(index)

    async def set_current_version(self, workflow_id: str, version_id: str) -> WorkflowRecord:
        """Point a workflow at one of its existing versions."""
        await self.read_workflow_version_record(workflow_id, version_id)
        record = await self.read_workflow_record(workflow_id)
        record.current_version_id = version_id
        await self.write_workflow_record(record)
        logger.info(f"Workflow {workflow_id} now at {version_id}")
        return record

    async def create_workflow(
        self,
        workflow_id: str,
        name: str,
        nodes: list[WorkflowNode | dict[str, Any]],
        description: str | None = None,
        make_current: bool = False,
    ) -> WorkflowRecord:
        """Create a workflow with version v1 and an empty collection schema."""
        self._require_workspace()
        if self.paths.workflow_record_path(workflow_id).exists():
            raise WorkflowValidationError(f"Workflow already exists: {workflow_id}")

        now = now_iso()
        version = build_version_record(
            {
                "workflow_id": workflow_id,
                "version_id": "v1",
                "name": "v1",
                "created_at": now,
                "nodes": [compact_dump(n) if isinstance(n, WorkflowNode) else n for n in nodes],
            }
        )
        await self.write_workflow_version_record(version)
        await self.write_collection_schema(CollectionSchemaConfig(workflow_id=workflow_id))
        record = WorkflowRecord(
            workflow_id=workflow_id,
            name=name,
            description=description,
            current_version_id="v1",
            created_at=now,
        )
        await self.write_workflow_record(record)

        async with self.locks.get("index"):
            index = await self.read_workflow_index()
            index.workflows.append(WorkflowSummary(workflow_id=workflow_id, name=name, created_at=now))
            if make_current or index.current_workflow_id is None:
                index.current_workflow_id = workflow_id
            await self.write_workflow_index(index)

        logger.info(f"Created workflow {workflow_id} ({name})")
        return record

    # ==================== Workflow versions ====================

    async def read_workflow_version_record(
        self, workflow_id: str, version_id: str
    ) -> WorkflowVersionRecord:
        self._require_workspace()
        try:
            data = await read_json(self.paths.version_path(workflow_id, version_id))
        except FileNotFoundError:
            raise WorkflowVersionNotFoundError(workflow_id, version_id) from None
        return WorkflowVersionRecord.model_validate(data)

    async def read_workflow_version_document(self, workflow_id: str, version_id: str) -> dict:
        """The stored version as a raw JSON document."""
        self._require_workspace()
        try:
            return await read_json(self.paths.version_path(workflow_id, version_id))
        except FileNotFoundError:
            raise WorkflowVersionNotFoundError(workflow_id, version_id) from None

    async def list_workflow_version_ids(self, workflow_id: str) -> list[str]:
        """Version ids of a workflow, oldest first."""
        self._require_workspace()
        versions_dir = self.paths.versions_dir(workflow_id)
        if not versions_dir.is_dir():
            return []
        numbered = []
        for path in versions_dir.glob("v*.json"):
            number = version_number(path.stem)
            if number is not None:
                numbered.append((number, path.stem))
        return [version_id for _, version_id in sorted(numbered)]

    async def next_version_id(self, workflow_id: str) -> str:
        existing = [version_number(v) for v in await self.list_workflow_version_ids(workflow_id)]
        return f"v{max(existing, default=0) + 1}"

    async def write_workflow_version_record(self, record: WorkflowVersionRecord) -> None:
        """Persist a new immutable version.

        Raises:
            WorkflowValidationError: Invalid version id or structure.
            CycleDetectedError: The nodes' collection dataflow has a cycle.
            InvalidTransitionError: The version exists or is not newer than the latest.
        """
        self._require_workspace()
        document = record.to_document()
        validate_workflow_version(document)

        number = version_number(record.version_id)
        if number is None:
            raise WorkflowValidationError(
                f"version_id must look like v<N>, got {record.version_id!r}"
            )
        path = self.paths.version_path(record.workflow_id, record.version_id)
        if path.exists():
            raise InvalidTransitionError(
                f"Workflow version {record.workflow_id}@{record.version_id} already exists",
                details={"workflow_id": record.workflow_id, "version_id": record.version_id},
            )
        latest = await self.list_workflow_version_ids(record.workflow_id)
        if latest and number <= version_number(latest[-1]):
            raise InvalidTransitionError(
                f"Version {record.version_id} is not newer than {latest[-1]}",
                details={"workflow_id": record.workflow_id, "version_id": record.version_id},
            )

        await write_json_atomic(path, document)
        logger.info(f"Wrote workflow version {record.workflow_id}@{record.version_id}")

    # ==================== Runs ====================

    async def run_exists(self, run_id: str) -> bool:
        self._require_workspace()
        return self.paths.run_path(run_id).is_file()

    async def read_run_file(self, run_id: str) -> RunRecord:
        self._require_workspace()
        try:
            data = await read_json(self.paths.run_path(run_id))
        except FileNotFoundError:
            raise RunNotFoundError(run_id) from None
        return RunRecord.model_validate(data)

    async def write_run_file(self, run: RunRecord) -> None:
        self._require_workspace()
        await write_json_atomic(self.paths.run_path(run.run_id), compact_dump(run))

    async def update_run_file(self, run_id: str, **fields: Any) -> RunRecord:
        """Merge fields into a run. A finished run's status cannot change.

        Raises:
            RecordUpdateError: A field name is unknown or a value is invalid.
            InvalidTransitionError: The run has already finished.
        """
        fields.pop("run_id", None)
        async with self.locks.run(run_id):
            run = await self.read_run_file(run_id)
            if "status" in fields:
                new_status = _coerce_status(RunStatus, fields["status"], run_id)
                fields["status"] = new_status
                if new_status is not run.status and run.status.is_terminal:
                    raise InvalidTransitionError(
                        f"Run {run_id} is {run.status.value}; cannot move to {new_status.value}",
                        details={"run_id": run_id, "from": run.status.value, "to": new_status.value},
                    )
            updated = _merge_update(run, fields, run_id)
            await self.write_run_file(updated)
        return updated

    async def list_runs(self, workflow_id: str | None = None) -> list[RunRecord]:
        self._require_workspace()
        if not self.paths.runs_dir.is_dir():
            return []
        runs = [
            RunRecord.model_validate(await read_json(path))
            for path in sorted(self.paths.runs_dir.glob("*.json"))
        ]
        if workflow_id is not None:
            runs = [run for run in runs if run.workflow_id == workflow_id]
        return sorted(runs, key=lambda run: run.created_at)

    # ==================== Events ====================

    def get_events_file_path(self, run_id: str) -> Path:
        return self.paths.events_path(run_id)

    async def append_event_line(self, run_id: str, event: EventRecord | dict[str, Any]) -> EventRecord:
        """Append one event line to a run's log."""
        if not await self.run_exists(run_id):
            raise RunNotFoundError(run_id)
        if not isinstance(event, EventRecord):
            event = EventRecord.model_validate(event)
        async with self.locks.get(("events", run_id)):
            await append_line(self.paths.events_path(run_id), event.model_dump(mode="json"))
        return event

    async def read_events(self, run_id: str) -> list[EventRecord]:
        if not await self.run_exists(run_id):
            raise RunNotFoundError(run_id)
        try:
            lines = await read_lines(self.paths.events_path(run_id))
        except FileNotFoundError:
            return []
        return [EventRecord.model_validate(line) for line in lines]

    # ==================== Node results ====================

    async def write_node_result(self, result: NodeResultRecord) -> None:
        if not await self.run_exists(result.run_id):
            raise RunNotFoundError(result.run_id)
        await write_json_atomic(
            self.paths.node_result_path(result.run_id, result.node_result_id),
            compact_dump(result),
        )

    async def read_node_result(self, run_id: str, node_result_id: str) -> NodeResultRecord:
        self._require_workspace()
        try:
            data = await read_json(self.paths.node_result_path(run_id, node_result_id))
        except FileNotFoundError:
            raise NodeNotFoundError(
                f"Node result not found: {node_result_id}",
                details={"run_id": run_id, "node_result_id": node_result_id},
            ) from None
        return NodeResultRecord.model_validate(data)

    async def list_node_results(self, run_id: str) -> list[NodeResultRecord]:
        if not await self.run_exists(run_id):
            raise RunNotFoundError(run_id)
        results_dir = self.paths.run_node_results_dir(run_id)
        if not results_dir.is_dir():
            return []
        results = [
            NodeResultRecord.model_validate(await read_json(path))
            for path in results_dir.glob("*.json")
        ]
        return sorted(results, key=lambda r: (r.started_at, r.node_result_id))

    # ==================== Collection schema ====================

    async def read_collection_schema(self, workflow_id: str) -> CollectionSchemaConfig:
        """A workflow's collection schema; empty if none has been written."""
        self._require_workspace()
        try:
            data = await read_json(self.paths.collection_schema_path(workflow_id))
        except FileNotFoundError:
            return CollectionSchemaConfig(workflow_id=workflow_id)
        return CollectionSchemaConfig.model_validate({**data, "workflow_id": workflow_id})

    async def write_collection_schema(self, schema: CollectionSchemaConfig) -> None:
        """Replace a workflow's collection schema and drop its cached validators."""
        self._require_workspace()
        self.schemas.check_schema(schema)
        async with self.locks.schema(schema.workflow_id):
            await write_json_atomic(
                self.paths.collection_schema_path(schema.workflow_id), schema.to_document()
            )
            self.schemas.invalidate(schema.workflow_id)
        logger.info(
            f"Wrote collection schema for {schema.workflow_id} ({len(schema.kinds)} kind(s))"
        )

    # ==================== Collections ====================

    async def _run_and_schema(self, run_id: str) -> tuple[RunRecord, CollectionSchemaConfig]:
        run = await self.read_run_file(run_id)
        return run, await self.read_collection_schema(run.workflow_id)

    @staticmethod
    def _is_global(schema: CollectionSchemaConfig, kind: str) -> bool:
        kind_schema = schema.kinds.get(kind)
        return kind_schema is not None and kind_schema.is_global is True

    async def _read_run_store(self, run_id: str, kind: str) -> CollectionStore:
        try:
            data = await read_json(self.paths.collection_path(run_id, kind))
        except FileNotFoundError:
            return CollectionStore(run_id=run_id, kind=kind, updated_at=now_iso())
        return CollectionStore.model_validate(data)

    async def _read_global_store(self, kind: str) -> GlobalEntityStore:
        try:
            data = await read_json(self.paths.global_collection_path(kind))
        except FileNotFoundError:
            return GlobalEntityStore(kind=kind, updated_at=now_iso())
        return GlobalEntityStore.model_validate(data)

    async def read_collections(self, run_id: str, kind: str) -> CollectionStore:
        """Items of ``kind`` in a run, in insertion order."""
        _, schema = await self._run_and_schema(run_id)
        if self._is_global(schema, kind):
            store = await self._read_global_store(kind)
            items = [item for item in store.items if item.get("run_id") == run_id]
            return CollectionStore(run_id=run_id, kind=kind, updated_at=store.updated_at, items=items)
        return await self._read_run_store(run_id, kind)

    async def append_collection(
        self,
        run_id: str,
        kind: str,
        payload: dict[str, Any],
        provenance: Provenance | None = None,
        item_id: str | None = None,
    ) -> dict[str, Any]:
        """Validate and append one item. Nothing is written if validation fails."""
        items = await self.append_collections(run_id, kind, [payload], provenance, item_id=item_id)
        return items[0]

    async def append_collections(
        self,
        run_id: str,
        kind: str,
        payloads: list[dict[str, Any]],
        provenance: Provenance | None = None,
        item_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Validate and append items in one write; one invalid payload aborts all.

        The store assigns ``id`` and ``created_at``; values the caller sends
        for system fields are dropped. ``item_id`` is the only override.
        """
        run = await self.read_run_file(run_id)
        payloads = [_split_item(kind, raw, index)[1] for index, raw in enumerate(payloads)]
        async with self.locks.schema(run.workflow_id):
            schema = await self.read_collection_schema(run.workflow_id)
            try:
                if len(payloads) == 1:
                    self.schemas.validate_item(schema, kind, payloads[0])
                else:
                    self.schemas.validate_items(schema, kind, payloads)
            except SchemaValidationError as e:
                logger.warning(f"Rejected append to {run_id}/{kind}: {e.message}")
                raise

            is_global = self._is_global(schema, kind)
            item_run_id = run_id if is_global else None
            async with self.locks.collection(None if is_global else run_id, kind):
                now = now_iso()
                items = [
                    _build_item(payload, {}, now, provenance, run_id=item_run_id, item_id=item_id)
                    for payload in payloads
                ]
                if is_global:
                    store = await self._read_global_store(kind)
                    store.items.extend(items)
                    store.updated_at = now
                    await write_json_atomic(
                        self.paths.global_collection_path(kind), store.model_dump(mode="json")
                    )
                else:
                    run_store = await self._read_run_store(run_id, kind)
                    run_store.items.extend(items)
                    run_store.updated_at = now
                    await write_json_atomic(
                        self.paths.collection_path(run_id, kind), run_store.model_dump(mode="json")
                    )

        logger.debug(f"Appended {len(items)} item(s) to {run_id}/{kind}")
        return items

    async def write_collections(
        self,
        run_id: str,
        kind: str,
        payloads: list[dict[str, Any]],
        provenance: Provenance | None = None,
    ) -> CollectionStore:
        """Replace all items of ``kind`` in a run. One invalid payload aborts the write.

        Items that already carry ``id``/``created_at`` keep them, so writing back
        what ``read_collections`` returned is lossless.
        """
        run = await self.read_run_file(run_id)
        split = [_split_item(kind, raw, index) for index, raw in enumerate(payloads)]
        async with self.locks.schema(run.workflow_id):
            schema = await self.read_collection_schema(run.workflow_id)
            try:
                self.schemas.validate_items(schema, kind, [payload for _, payload in split])
            except SchemaValidationError as e:
                logger.warning(f"Rejected write to {run_id}/{kind}: {e.message}")
                raise

            is_global = self._is_global(schema, kind)
            async with self.locks.collection(None if is_global else run_id, kind):
                now = now_iso()
                if is_global:
                    items = [
                        _build_item(payload, system, now, provenance, run_id=run_id)
                        for system, payload in split
                    ]
                    store = await self._read_global_store(kind)
                    store.items = [i for i in store.items if i.get("run_id") != run_id] + items
                    store.updated_at = now
                    await write_json_atomic(
                        self.paths.global_collection_path(kind), store.model_dump(mode="json")
                    )
                    result = CollectionStore(run_id=run_id, kind=kind, updated_at=now, items=items)
                else:
                    items = [
                        _build_item(payload, system, now, provenance) for system, payload in split
                    ]
                    result = CollectionStore(run_id=run_id, kind=kind, updated_at=now, items=items)
                    await write_json_atomic(
                        self.paths.collection_path(run_id, kind), result.model_dump(mode="json")
                    )

        logger.info(f"Wrote {len(items)} item(s) to {run_id}/{kind}")
        return result

    async def _item_counts(self, run_id: str) -> dict[str, int]:
        _, schema = await self._run_and_schema(run_id)
        counts: dict[str, int] = {}
        run_dir = self.paths.run_collections_dir(run_id)
        if run_dir.is_dir():
            for path in sorted(run_dir.glob("*.json")):
                store = CollectionStore.model_validate(await read_json(path))
                counts[store.kind] = len(store.items)
        for kind in schema.kinds:
            if self._is_global(schema, kind):
                global_store = await self._read_global_store(kind)
                count = sum(1 for item in global_store.items if item.get("run_id") == run_id)
                if count:
                    counts[kind] = count
        return counts

    async def list_collection_kinds_for_run(self, run_id: str) -> list[str]:
        """Kinds that have a store in the run, including global kinds with run items."""
        return list(await self._item_counts(run_id))

    async def kinds_with_items(self, run_id: str) -> set[str]:
        """Kinds holding at least one item for the run."""
        return {kind for kind, count in (await self._item_counts(run_id)).items() if count > 0}

    # ==================== Mutations ====================

    async def write_mutation_file(self, mutation: MutationRecord) -> None:
        self._require_workspace()
        await write_json_atomic(self.paths.mutation_path(mutation.mutation_id), compact_dump(mutation))

    async def read_mutation_file(self, mutation_id: str) -> MutationRecord:
        self._require_workspace()
        try:
            data = await read_json(self.paths.mutation_path(mutation_id))
        except FileNotFoundError:
            raise MutationNotFoundError(mutation_id) from None
        return MutationRecord.model_validate(data)

    async def update_mutation_file(self, mutation_id: str, **fields: Any) -> MutationRecord:
        """Merge fields into a mutation. Status only moves forward from ``proposed``."""
        fields.pop("mutation_id", None)
        async with self.locks.mutation(mutation_id):
            mutation = await self.read_mutation_file(mutation_id)
            if "status" in fields:
                new_status = _coerce_status(MutationStatus, fields["status"], mutation_id)
                fields["status"] = new_status
                if new_status is not mutation.status and mutation.status is not MutationStatus.PROPOSED:
                    raise InvalidTransitionError(
                        f"Mutation {mutation_id} is {mutation.status.value}; "
                        f"cannot move to {new_status.value}",
                        details={
                            "mutation_id": mutation_id,
                            "from": mutation.status.value,
                            "to": new_status.value,
                        },
                    )
            updated = _merge_update(mutation, fields, mutation_id)
            await self.write_mutation_file(updated)
        return updated

    async def list_mutations(
        self, workflow_id: str | None = None, status: MutationStatus | None = None
    ) -> list[MutationRecord]:
        self._require_workspace()
        if not self.paths.mutations_dir.is_dir():
            return []
        mutations = [
            MutationRecord.model_validate(await read_json(path))
            for path in self.paths.mutations_dir.glob("*.json")
        ]
        if workflow_id is not None:
            mutations = [m for m in mutations if m.target.workflow_id == workflow_id]
        if status is not None:
            mutations = [m for m in mutations if m.status is status]
        return sorted(mutations, key=lambda m: (m.created_at, m.mutation_id))
