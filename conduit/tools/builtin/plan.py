"""
Agent planning tools and the completion signal.

The plan lives on ``ToolContext.plan`` so each conversation has its own.
"""

from __future__ import annotations

from conduit.tools.base import AgentPlan, PlanStep, Tool, ToolContext

STEP_STATUSES = ["pending", "in_progress", "completed", "skipped"]
FINAL_STATUSES = ["success", "partial_success", "unable_to_complete"]

_STATUS_ICONS = {
    "completed": "✅",
    "in_progress": "🔄",
    "skipped": "⏭️",
    "pending": "⏳",
}
_FINAL_ICONS = {
    "success": "✅",
    "partial_success": "⚠️",
    "unable_to_complete": "❌",
}


def _step_schema(description: str, with_position: bool = False) -> dict:
    props = {
        "description": {"type": "string", "minLength": 1, "description": description},
        "id": {
            "type": "string",
            "minLength": 1,
            "description": 'Unique identifier for this step (e.g., "step1", "create_project")',
        },
    }
    if with_position:
        props["after_step_id"] = {
            "type": "string",
            "description": "Insert after this step ID (if not provided, adds to end)",
        }
    return {"type": "object", "properties": props, "required": ["description", "id"]}


class PlanCreateTool(Tool):
    @property
    def name(self) -> str:
        return "agent_plan_create"

    @property
    def description(self) -> str:
        return (
            "Create an agent execution plan for complex tasks. This is for the "
            "agent's own planning and tracking. Use this to break down user "
            "requests into manageable steps."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "goal": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The overall goal or objective to accomplish",
                },
                "steps": {
                    "type": "array",
                    "minItems": 1,
                    "items": _step_schema("Description of this step"),
                    "description": "Array of steps needed to accomplish the goal",
                },
            },
            "required": ["goal", "steps"],
        }

    def format_call_preview(self, params: dict) -> str | None:
        steps = "\n".join(
            f"{i}. ⏳ {s.get('description', '')}"
            for i, s in enumerate(params.get("steps") or [], start=1)
        )
        return f'📋 Creating execution plan: "{params.get("goal", "")}"\n\n{steps}'

    async def execute(self, params: dict, context: ToolContext) -> str:
        context.plan = AgentPlan(
            goal=params["goal"],
            steps=[PlanStep(id=s["id"], description=s["description"]) for s in params["steps"]],
        )
        steps = "\n".join(
            f"{i}. [{s.status.upper()}] {s.description} (ID: {s.id})"
            for i, s in enumerate(context.plan.steps, start=1)
        )
        return (
            "📋 Internal execution plan created:\n\n"
            f"**Goal:** {context.plan.goal}\n\n"
            f"**Steps:**\n{steps}\n\n"
            "Use agent_plan_update to mark steps as in_progress, completed, or "
            "add notes as you work through them."
        )


class PlanUpdateTool(Tool):
    @property
    def name(self) -> str:
        return "agent_plan_update"

    @property
    def description(self) -> str:
        return (
            "Update the agent execution plan by changing step status, adding "
            "notes, or adding new steps. This helps track progress through "
            "complex tasks."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "step_id": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The ID of the step to update",
                },
                "status": {
                    "type": "string",
                    "enum": STEP_STATUSES,
                    "description": "New status for the step",
                },
                "notes": {
                    "type": "string",
                    "description": "Additional notes or observations about this step",
                },
                "add_steps": {
                    "type": "array",
                    "items": _step_schema("Description of the new step", with_position=True),
                    "description": "New steps to add to the plan",
                },
            },
            "required": ["step_id"],
        }

    def format_call_preview(self, params: dict) -> str | None:
        icon = _STATUS_ICONS.get(params.get("status") or "pending", "⏳")
        return f'📝 Updating plan step "{params.get("step_id", "")}" {icon}'

    async def execute(self, params: dict, context: ToolContext) -> str:
        plan = context.plan
        if plan is None:
            raise ValueError("No agent plan exists. Create one first using agent_plan_create.")

        idx = plan.find(params["step_id"])
        if idx == -1:
            raise ValueError(f'Step with ID "{params["step_id"]}" not found in current plan.')

        step = plan.steps[idx]
        if params.get("status") is not None:
            step.status = params["status"]
        if params.get("notes") is not None:
            step.notes = params["notes"]

        for new in params.get("add_steps") or []:
            new_step = PlanStep(id=new["id"], description=new["description"])
            after = plan.find(new["after_step_id"]) if new.get("after_step_id") else -1
            if after == -1:
                plan.steps.append(new_step)
            else:
                plan.steps.insert(after + 1, new_step)

        counts = {s: 0 for s in STEP_STATUSES}
        for s in plan.steps:
            counts[s.status] = counts.get(s.status, 0) + 1

        lines = []
        for i, s in enumerate(plan.steps, start=1):
            notes = f" (Notes: {s.notes})" if s.notes else ""
            lines.append(
                f"{i}. {_STATUS_ICONS.get(s.status, '⏳')} [{s.status.upper()}] "
                f"{s.description} (ID: {s.id}){notes}"
            )

        return (
            "📋 Agent plan updated:\n\n"
            f"**Goal:** {plan.goal}\n\n"
            f"**Progress:** {counts['completed']} completed, {counts['in_progress']} "
            f"in progress, {counts['pending']} pending, {counts['skipped']} skipped\n\n"
            "**Steps:**\n" + "\n".join(lines)
        )


class AgentDoneTool(Tool):
    """Completion signal for agent runs; the loop stops when this is called."""

    @property
    def name(self) -> str:
        return "agent_done"

    @property
    def description(self) -> str:
        return (
            "Signal that the current task is completely finished. Use this when "
            "you have accomplished all aspects of the user's request and no "
            "further actions are needed."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "summary": {
                    "type": "string",
                    "minLength": 1,
                    "description": "A brief summary of what was accomplished",
                },
                "final_status": {
                    "type": "string",
                    "enum": FINAL_STATUSES,
                    "description": "The completion status of the task",
                },
                "next_steps": {
                    "type": "string",
                    "description": "Any recommended next steps for the user",
                },
            },
            "required": ["summary", "final_status"],
        }

    def format_call_preview(self, params: dict) -> str | None:
        icon = _FINAL_ICONS.get(params.get("final_status", ""), "❌")
        return f"{icon} Task completed: {params.get('summary', '')}"

    async def execute(self, params: dict, context: ToolContext) -> str:
        status = params["final_status"]
        out = (
            f"{_FINAL_ICONS[status]} Task completed with status: {status}\n\n"
            f"**Summary:** {params['summary']}"
        )
        if params.get("next_steps") is not None:
            out += f"\n\n**Recommended next steps:** {params['next_steps']}"
        return out + "\n\n🔚 Agent task execution complete."
