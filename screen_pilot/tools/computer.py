"""Action tool: drive the remote computer and report back with a fresh screenshot."""

from pydantic import BaseModel, Field

from screen_pilot.agent_log import SCREENSHOT_PLACEHOLDER, PlanningData
from screen_pilot.computer import ComputerAction, ComputerProvider
from screen_pilot.exceptions import ComputerProviderError
from screen_pilot.llm import ImageContent, TextContent, UserMessage
from screen_pilot.logging import get_logger
from screen_pilot.tools.registry import Tool, ToolContext, ToolResponse

log = get_logger(__name__)


class ComputerToolArgs(BaseModel):
    action: ComputerAction = Field(description="The action to perform on the computer")
    reasoning: str = Field(default="", description="Why this action moves the task forward")
    previous_step_evaluation: str = Field(
        default="",
        description="Did the previous action achieve what was expected? Describe what changed on screen.",
    )
    current_step_reasoning: str = Field(
        default="",
        description="What you see on the current screenshot and why this action is the right one now.",
    )
    next_step_goal: str = Field(
        default="",
        description="What you expect to do after this action succeeds.",
    )

    def planning(self) -> PlanningData:
        return PlanningData(
            previous_step_evaluation=self.previous_step_evaluation,
            current_step_reasoning=self.current_step_reasoning,
            next_step_goal=self.next_step_goal,
        )


def planning_text(step: int, planning: PlanningData) -> str:
    return (
        f"[PLANNING - Step {step}]\n"
        f"Previous Step Evaluation: {planning.previous_step_evaluation}\n"
        f"Current Step Reasoning: {planning.current_step_reasoning}\n"
        f"Next Step Goal: {planning.next_step_goal}"
    )


class ComputerTool(Tool):
    """Perform one computer action, then attach the resulting screen."""

    name = "computer_action"
    description = (
        "Perform an action on the computer: click, double_click, drag, keypress, move, "
        "scroll, type or wait. A screenshot of the screen after the action is returned."
    )
    args_model = ComputerToolArgs

    def __init__(self, provider: ComputerProvider):
        self.provider = provider

    async def execute(self, args: ComputerToolArgs, context: ToolContext) -> ToolResponse:
        try:
            result = await self.provider.perform_action(
                args.action,
                session_id=context.session_id,
                step=context.step,
                reasoning=args.reasoning or None,
            )
            screenshot = await self.provider.take_screenshot(context.session_id)
            image_url = await self.provider.upload_screenshot(
                base64=screenshot,
                session_id=context.session_id,
                step=context.step,
            )
        except ComputerProviderError:
            raise
        except Exception as e:
            raise ComputerProviderError(f"Failed to perform {args.action.type} action: {e}") from e

        log.info(
            "Computer action performed",
            action=args.action.type,
            performed=result.action_performed,
            step=context.step,
        )
        planning = args.planning()
        image = ImageContent.from_url(image_url) if image_url else ImageContent.from_base64(screenshot)
        response = UserMessage(
            content=(
                TextContent(text=planning_text(context.step, planning)),
                TextContent(
                    text=(
                        f"Computer action on {result.timestamp}, result: {result.action_performed}. "
                        f"Reasoning: {result.reasoning or args.reasoning} Screenshot as attached."
                    )
                ),
                image,
            )
        )
        return ToolResponse(
            message=response,
            log_entry=self.log_entry(
                context,
                args,
                response,
                image_url=image_url,
                reasoning=args.reasoning,
                screenshot=image_url or SCREENSHOT_PLACEHOLDER,
                override_screenshot=True,
                planning=planning,
            ),
        )
