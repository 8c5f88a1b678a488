"""Wait tool for letting pages and animations settle."""

import asyncio
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from screen_pilot.tools.registry import Tool, ToolContext, ToolResponse, text_response


class WaitArgs(BaseModel):
    duration: float = Field(
        ge=0,
        description="Duration to wait in seconds. For example, use 5 to wait 5 seconds for a page to load.",
    )
    reasoning: str = Field(default="", description="The reason for waiting.")


class WaitTool(Tool):
    name = "wait"
    description = (
        "Wait for a certain duration. Normally used to wait for a page to load, "
        "an animation to complete, or a certain task/action to complete."
    )
    args_model = WaitArgs

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._sleep = sleep

    async def execute(self, args: WaitArgs, context: ToolContext) -> ToolResponse:
        await self._sleep(args.duration)
        response = text_response(f"Waited for {args.duration:g} seconds. Reason: {args.reasoning}")
        return ToolResponse(
            message=response,
            log_entry=self.log_entry(context, args, response, reasoning=args.reasoning),
        )
