#!/usr/bin/env python3
"""
Seed script for a Sales Prospecting workflow.

Based on the sales process:
1. Sales Trigger Detection (RFP, funding, hiring)
2. ICP Fit Validation (firmographics), kept in a global companies collection
3. Contact Enrichment
4. Human Review (HITL)
5. Outreach Drafting

Run with: python backend/scripts/seed_prospecting_workflow.py --workspace ./
"""

import argparse
import asyncio
import logging
from pathlib import Path

from collectflow.db.workspace_store import WorkspaceStore
from collectflow.errors import WorkflowNotFoundError
from collectflow.models import (
    CollectionKindSchema,
    CollectionReference,
    CollectionSchemaConfig,
    NodeType,
    WorkflowNode,
    WorkflowRecord,
)

logger = logging.getLogger(__name__)

WORKFLOW_ID = "wf_sales_prospecting"
WORKFLOW_NAME = "Sales Prospecting Workflow"

NODES = [
    WorkflowNode(
        id="detect_triggers",
        type=NodeType.PROMPT,
        input_collections=["run_input"],
        output_collections=["triggers"],
        minimum_rows=3,
        prompt="Find recent sales triggers (RFPs, funding rounds, hiring spikes) for the target market.",
    ),
    WorkflowNode(
        id="validate_icp_fit",
        type=NodeType.PROMPT,
        input_collections=["triggers"],
        output_collections=["companies"],
        prompt="Check each triggering company against the ideal customer profile.",
    ),
    WorkflowNode(
        id="enrich_contacts",
        type=NodeType.PROMPT,
        input_collections=["companies"],
        output_collections=["contacts"],
        prompt="Find decision makers at each qualified company and map them to a buyer persona.",
    ),
    WorkflowNode(
        id="review_prospects",
        type=NodeType.HUMAN_IN_THE_LOOP,
        input_collections=["contacts"],
        output_collections=["approved_contacts"],
        prompt="Approve the contacts worth reaching out to.",
    ),
    WorkflowNode(
        id="draft_outreach",
        type=NodeType.PROMPT,
        input_collections=["approved_contacts"],
        output_collections=["outreach_drafts"],
        prompt="Draft a short first-touch email per approved contact, citing the trigger.",
    ),
]


def prospecting_schema() -> CollectionSchemaConfig:
    return CollectionSchemaConfig(
        workflow_id=WORKFLOW_ID,
        kinds={
            "run_input": CollectionKindSchema(
                description="Target market for the run.",
                required=["market"],
                item_schema={
                    "type": "object",
                    "properties": {"market": {"type": "string"}, "region": {"type": "string"}},
                },
            ),
            "triggers": CollectionKindSchema(
                description="A buying signal found for a company.",
                required=["company_name", "trigger_type", "source_url"],
                item_schema={
                    "type": "object",
                    "properties": {
                        "company_name": {"type": "string"},
                        "trigger_type": {"enum": ["rfp", "funding", "hiring", "other"]},
                        "source_url": {"type": "string"},
                        "summary": {"type": "string"},
                    },
                },
            ),
            "companies": CollectionKindSchema(
                description="Companies that fit the ideal customer profile.",
                required=["name", "icp_fit"],
                is_global=True,
                item_schema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "domain": {"type": "string"},
                        "employee_count": {"type": "integer", "minimum": 1},
                        "icp_fit": {"enum": ["strong", "partial", "none"]},
                    },
                },
            ),
            "contacts": CollectionKindSchema(
                description="Decision makers at qualified companies.",
                required=["name", "company_id", "persona"],
                item_schema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "company_id": {"type": "string"},
                        "title": {"type": "string"},
                        "persona": {"type": "string"},
                        "email": {"type": "string"},
                    },
                },
                references=[CollectionReference(field="company_id", kind="companies")],
            ),
            "approved_contacts": CollectionKindSchema(
                description="Contacts a reviewer approved.",
                required=["contact_id"],
                references=[CollectionReference(field="contact_id", kind="contacts")],
            ),
            "outreach_drafts": CollectionKindSchema(
                description="First-touch emails ready to send.",
                required=["contact_id", "subject", "body"],
                references=[CollectionReference(field="contact_id", kind="contacts")],
            ),
        },
    )


async def seed_workspace(workspace_path: Path) -> WorkflowRecord:
    """Create the prospecting workflow in a workspace, initializing it if needed."""
    store = WorkspaceStore(workspace_path)
    if not store.workspace_exists():
        await store.init_workspace()

    try:
        existing = await store.read_workflow_record(WORKFLOW_ID)
    except WorkflowNotFoundError:
        existing = None
    if existing is not None:
        logger.info(f"Workflow {WORKFLOW_ID} already exists at {existing.current_version_id}")
        return existing

    record = await store.create_workflow(
        WORKFLOW_ID,
        WORKFLOW_NAME,
        NODES,
        description="Find buying signals, qualify companies, enrich contacts and draft outreach.",
        make_current=True,
    )
    await store.write_collection_schema(prospecting_schema())
    return record


async def main() -> None:
    """Seed the workspace with the sales prospecting workflow."""
    parser = argparse.ArgumentParser(
        description="Seed a collectflow workspace with the sales prospecting workflow",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--workspace", "-w",
        type=Path,
        default=Path.cwd(),
        help="Directory that holds (or will hold) .collectflow",
    )
    args = parser.parse_args()
    workspace_path = args.workspace
    print(f"Using workspace: {workspace_path}")

    record = await seed_workspace(workspace_path)

    print("\n" + "=" * 60)
    print(f"Workflow: {record.name} ({record.workflow_id})")
    print(f"Current version: {record.current_version_id}")
    print(f"Nodes: {', '.join(node.id for node in NODES)}")
    print("=" * 60)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
