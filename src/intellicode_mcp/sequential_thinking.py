"""
Sequential thinking - structured problem breakdown.

Produces ordered steps, decisions and (optionally) alternatives for a
problem statement. Depth is the smaller of the requested depth and the
configured max_depth. A configurable delay runs first; tests set it to 0.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List

from .config import SequentialThinkingConfig
from .mcp_logger import log_info
from .models import SequentialThinkingRequest
from .tool_registry import ToolContext

BASE_STEPS = [
    "Understand the problem: {problem}",
    "Break the problem into sub-problems, starting from thought {thought}",
    "Generate candidate solutions for each sub-problem",
    "Evaluate the candidates against constraints and alternatives",
    "Select a solution and define how to verify it",
]


class SequentialThinker:
    def __init__(
        self,
        config: SequentialThinkingConfig,
        delay: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.delay = delay

    def steps_for(self, request: SequentialThinkingRequest, depth: int) -> List[str]:
        thought = request.thoughtNumber or 1
        templates = BASE_STEPS[:depth]
        # Depth beyond the base template adds refinement passes
        templates += [f"Refine the chosen solution (pass {i})" for i in range(1, depth - len(BASE_STEPS) + 1)]
        return [
            f"Step {i}: " + t.format(problem=request.problem_statement, thought=thought)
            for i, t in enumerate(templates, start=1)
        ]

    async def think(self, request: SequentialThinkingRequest, ctx: ToolContext) -> Dict[str, Any]:
        log_info(f"Executing sequential_thinking_process with problem: {request.problem_statement}")
        if self.config.think_delay_seconds > 0:
            await self.delay(self.config.think_delay_seconds)

        depth = min(request.thinking_depth, self.config.max_depth)
        decisions = [
            "Decision 1: Prioritize based on current context.",
            f"Decision 2: Choose the optimal path for '{request.nextThoughtNeeded or 'initial problem'}'",
        ]
        if request.isRevision:
            decisions.append("Decision 3: Revisit the previous thought before continuing.")
        alternatives = [
            "Alternative 1: Consider a different architectural pattern.",
            "Alternative 2: Explore existing libraries for a quicker solution.",
        ] if request.include_alternatives else []

        return {
            "status": "success",
            "message": f'Sequential thinking process completed for: "{request.problem_statement}".',
            "problem_statement": request.problem_statement,
            "thinking_depth": depth,
            "include_alternatives": request.include_alternatives,
            "steps": self.steps_for(request, depth),
            "decisions": decisions,
            "alternatives": alternatives,
            "thoughtNumber": request.thoughtNumber,
            "nextThoughtNeeded": request.nextThoughtNeeded,
            "isRevision": request.isRevision,
            "branchId": request.branchId,
        }
