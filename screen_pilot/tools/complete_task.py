"""Completion tool: evaluator-gated finalization of the task result.

A completion attempt is either reflected back to the acting model with
feedback, or finalized into the caller's output schema by the ground model.
Once more than ``max_attempts_before_force`` attempts are visible in the
history, evaluation is skipped so the task always terminates.
"""

from pydantic import BaseModel, ConfigDict, Field

from screen_pilot.config import CompletionConfig, get_config
from screen_pilot.exceptions import AIProviderError
from screen_pilot.instructions import InstructionLoader
from screen_pilot.llm import AgentMessage, AIProvider, AssistantMessage, user_text
from screen_pilot.logging import get_logger
from screen_pilot.tools.registry import (
    Tool,
    ToolCompletion,
    ToolContext,
    ToolOutcome,
    ToolResponse,
    text_response,
)
from screen_pilot.transport import (
    ImageResolver,
    get_image_resolver,
    limit_by_item_count,
    limit_messages,
)

log = get_logger(__name__)

COMPLETE_TASK_TOOL = "complete_task"


class DefaultOutput(BaseModel):
    """Output schema used when the caller does not supply one."""

    value: str = Field(description="The result of the task")


class CompleteTaskArgs(BaseModel):
    # models call the tool with camelCase keys; snake_case is accepted too
    model_config = ConfigDict(populate_by_name=True)

    completion_summary: str = Field(
        alias="completionSummary",
        description="Summary of what was accomplished and how each requirement was met",
    )
    verification_evidence: str = Field(
        alias="verificationEvidence",
        description="Concrete evidence from the screen or tool results that the task is done",
    )
    final_state_description: str = Field(
        alias="finalStateDescription",
        description="Description of the final state of the screen and the task",
    )


class Approval(BaseModel):
    reason: str


class Reflection(BaseModel):
    reason: str
    reflection_for_improvement: str


class EvaluationResult(BaseModel):
    approved: Approval | None = None
    reflection: Reflection | None = None


def count_completion_attempts(messages: list[AgentMessage]) -> int:
    """Number of completion tool calls the model has issued so far."""
    return sum(
        1
        for message in messages
        if isinstance(message, AssistantMessage)
        for call in message.tool_calls
        if call.name == COMPLETE_TASK_TOOL
    )


def reflection_text(reflection: Reflection) -> str:
    return (
        "This task was determined to be incomplete. "
        f"The reason is: {reflection.reason}. "
        "Please improve the task completion based on the following feedback: "
        f"{reflection.reflection_for_improvement}"
    )


class CompleteTaskTool(Tool):
    """Propose completion; the evaluator approves or reflects, the ground model finalizes."""

    name = COMPLETE_TASK_TOOL
    description = (
        "Mark the task as complete. Only call this when every requirement of the task has been met. "
        "Provide a summary, concrete verification evidence and a description of the final state."
    )
    args_model = CompleteTaskArgs

    def __init__(
        self,
        ground: AIProvider,
        evaluator: AIProvider | None,
        instructions: str,
        output_schema: type[BaseModel] = DefaultOutput,
        loader: InstructionLoader | None = None,
        config: CompletionConfig | None = None,
        resolver: ImageResolver | None = None,
    ):
        self.ground = ground
        self.evaluator = evaluator
        self.instructions = instructions
        self.output_schema = output_schema
        self.loader = loader or InstructionLoader()
        self.config = config or get_config().completion
        self.resolver = resolver

    async def execute(self, args: CompleteTaskArgs, context: ToolContext) -> ToolOutcome:
        attempts = count_completion_attempts(context.messages)
        force = attempts > self.config.max_attempts_before_force
        log.info("Completion attempt", attempt=attempts, force=force, step=context.step)

        if not force and self.evaluator is not None:
            evaluation = await self._evaluate(self.evaluator, args, context.messages)
            if evaluation.reflection is not None:
                log.info("Completion reflected", reason=evaluation.reflection.reason)
                response = text_response(reflection_text(evaluation.reflection))
                return ToolResponse(
                    message=response,
                    log_entry=self.log_entry(
                        context, args, response, reasoning=evaluation.reflection.reason
                    ),
                )
            if evaluation.approved is not None:
                log.info("Completion approved", reason=evaluation.approved.reason)

        output = await self._finalize(args, context.messages)
        return ToolCompletion(output=output)

    async def _prepare(self, provider: AIProvider, messages: list[AgentMessage]) -> list[AgentMessage]:
        resolver = self.resolver or get_image_resolver()
        capped = limit_by_item_count(messages, self.config.max_history_items)
        resolved = await resolver.resolve(capped)
        return limit_messages(resolved, await provider.model_name(), resolver.config)

    async def _evaluate(
        self,
        evaluator: AIProvider,
        args: CompleteTaskArgs,
        history: list[AgentMessage],
    ) -> EvaluationResult:
        prompt = self.loader.render(
            "completion_evaluation.md",
            instructions=self.instructions,
            completion_summary=args.completion_summary,
            verification_evidence=args.verification_evidence,
            final_state_description=args.final_state_description,
        )
        messages = await self._prepare(evaluator, [*history, user_text(prompt)])
        try:
            result = await evaluator.generate_object(schema=EvaluationResult, messages=messages)
        except Exception as e:
            raise AIProviderError(f"Completion evaluation failed: {e}") from e
        evaluation = result.object
        if isinstance(evaluation, EvaluationResult):
            return evaluation
        return EvaluationResult.model_validate(evaluation)

    async def _finalize(self, args: CompleteTaskArgs, history: list[AgentMessage]) -> BaseModel:
        prompt = self.loader.render(
            "completion_finalize.md",
            completion_summary=args.completion_summary,
            verification_evidence=args.verification_evidence,
            final_state_description=args.final_state_description,
        )
        messages = await self._prepare(self.ground, [*history, user_text(prompt)])
        try:
            result = await self.ground.generate_object(schema=self.output_schema, messages=messages)
        except Exception as e:
            raise AIProviderError(f"Task finalization failed: {e}") from e
        output = result.object
        if isinstance(output, self.output_schema):
            return output
        return self.output_schema.model_validate(output)
