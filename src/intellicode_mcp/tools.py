"""
Tool catalog.

Maps every tool name to its description, request model and handler, and
builds the registry/router the server, CLI and scheduler share.

handlers= replaces the handler of a named tool while keeping its request
model, which is how tests stand in for ESLint, tsc and SerpAPI.
"""

import asyncio
from typing import Dict, Optional, Tuple, Type

from .code_intelligence import CodeIntelligence, DelayHook
from .config import Config
from .context_condensing import ContextCondenser
from .conversation_summarizer import ConversationSummarizer, Enhancer
from .daily_digest import generate_daily_digest
from .integrations.eslint import ESLintAnalyzer
from .integrations.serpapi import WebSearch
from .integrations.typescript import TypeScriptDiagnostics
from .memory_bank import MemoryBank, MemoryBankManager
from .models import (
    CodeIntelligenceRequest,
    ContextCondensingRequest,
    DailyDigestRequest,
    ESLintRequest,
    MemoryBankRequest,
    MemoryMapRequest,
    SequentialThinkingRequest,
    SummarizerRequest,
    ToolRequest,
    TypeScriptRequest,
    WebSearchRequest,
    WorkflowRequest,
)
from .orchestrator import WorkflowOrchestrator
from .sequential_thinking import SequentialThinker
from .tool_registry import Handler, ToolDescriptor, ToolRegistry, ToolRouter

# name -> (description, request model)
TOOL_CATALOG: Dict[str, Tuple[str, Type[ToolRequest]]] = {
    "code_intelligence_analyze": (
        "Phased code analysis: Inspection -> Diagnosis -> Execution, plus conflict checks",
        CodeIntelligenceRequest,
    ),
    "memory_bank_manager": (
        "Read, write, update, archive and search the memory bank",
        MemoryBankRequest,
    ),
    "generate_memory_map": (
        "Write a Mermaid dependency graph of a file to technical/dependency-map.md",
        MemoryMapRequest,
    ),
    "roo_code_workflow": (
        "Execute a complete analysis workflow",
        WorkflowRequest,
    ),
    "conversation_summarizer": (
        "Summarize conversation history by priority level and compression rate, optionally saving it",
        SummarizerRequest,
    ),
    "eslint_analysis": (
        "Code quality analysis with auto-fix capabilities",
        ESLintRequest,
    ),
    "typescript_diagnostics": (
        "TypeScript type checking and diagnostics",
        TypeScriptRequest,
    ),
    "web_search_enhanced": (
        "Enhanced web search with result caching",
        WebSearchRequest,
    ),
    "sequential_thinking_process": (
        "Step-by-step problem solving with decision trees",
        SequentialThinkingRequest,
    ),
    "context_condensing_process": (
        "Condense memory bank documents by priority and compression rate",
        ContextCondensingRequest,
    ),
    "daily_digest_generator": (
        "Generate a daily summary of completed tasks, key decisions, errors and deadlines",
        DailyDigestRequest,
    ),
}


def default_handlers(
    config: Config,
    delay: DelayHook = asyncio.sleep,
    enhancer: Optional[Enhancer] = None,
) -> Dict[str, Handler]:
    bank = MemoryBank(config.memory.root_dir, archive_path=config.memory.archive.path)
    intelligence = CodeIntelligence(config, delay=delay)
    integrations = config.integrations

    handlers: Dict[str, Handler] = {
        "code_intelligence_analyze": intelligence.analyze,
        "memory_bank_manager": MemoryBankManager(bank).handle,
        "generate_memory_map": intelligence.generate_memory_map,
        "roo_code_workflow": WorkflowOrchestrator(config).run,
        "conversation_summarizer": ConversationSummarizer(config, enhancer=enhancer).summarize,
        "eslint_analysis": ESLintAnalyzer(integrations.eslint).analyze,
        "typescript_diagnostics": TypeScriptDiagnostics(integrations.typescript).diagnose,
        "web_search_enhanced": WebSearch(integrations.serpapi).search,
        "context_condensing_process": ContextCondenser(config).condense,
        "daily_digest_generator": generate_daily_digest,
    }
    if integrations.sequential_thinking.enabled:
        handlers["sequential_thinking_process"] = SequentialThinker(
            integrations.sequential_thinking, delay=delay
        ).think
    return handlers


def build_registry(
    config: Config,
    handlers: Optional[Dict[str, Handler]] = None,
    delay: DelayHook = asyncio.sleep,
    enhancer: Optional[Enhancer] = None,
) -> ToolRegistry:
    resolved = default_handlers(config, delay=delay, enhancer=enhancer)
    resolved.update(handlers or {})

    registry = ToolRegistry()
    for name, (description, model) in TOOL_CATALOG.items():
        if name not in resolved:
            continue
        registry.register(ToolDescriptor(
            name=name,
            description=description,
            request_model=model,
            handler=resolved[name],
        ))
    return registry


def build_router(
    config: Config,
    handlers: Optional[Dict[str, Handler]] = None,
    delay: DelayHook = asyncio.sleep,
    enhancer: Optional[Enhancer] = None,
) -> ToolRouter:
    registry = build_registry(config, handlers=handlers, delay=delay, enhancer=enhancer)
    return ToolRouter(registry, max_call_depth=config.router.max_call_depth)
