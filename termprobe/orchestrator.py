"""Iterative command orchestration.

Answers questions that need several diagnostic commands by looping:

1. The planner proposes an initial batch of commands
2. Queued commands are drained one at a time through the safety filter and
   the executor, and their output is parsed into working memory
3. Once the queue is empty the planner judges whether memory answers the question
4. If not, the planner proposes the next batch, and the loop continues
5. The final working memory is synthesized into a literal answer

The loop is bounded by an iteration count and a wall-clock budget, and can
be cancelled cooperatively at every planner or executor call.
"""

import logging
from typing import Any

from termprobe.cancellation import CancellationToken, OrchestrationCancelled
from termprobe.config import OrchestratorConfig
from termprobe.errors import InitialPlanError
from termprobe.executor import Executor
from termprobe.extractors import ExtractorRegistry
from termprobe.models import (
    CommandResult,
    CompletionVerdict,
    ExecutionContext,
    InitialPlan,
    LoopState,
    NextStep,
    OrchestrationResult,
    Synthesis,
)
from termprobe.parsing import load_json_object, looks_like_command, strip_fences
from termprobe.planner import Planner
from termprobe.prompts import (
    build_completion_prompt,
    build_initial_prompt,
    build_next_step_prompt,
    build_synthesis_prompt,
)
from termprobe.safety import BLOCKED_ERROR, SafetyFilter

logger = logging.getLogger(__name__)

NOTHING_EXECUTED_ANSWER = "No commands were executed, so no answer could be obtained."
SYNTHESIS_FAILED_ANSWER = "Could not synthesize a final answer from the collected data."
COMMAND_INSTEAD_OF_JSON = "There are still commands to run"
EVALUATION_FAILED = "Evaluation failed, continuing"


def memory_covers_discovered_items(ctx: ExecutionContext) -> bool:
    """Completeness override: every discovered list item already has extracted data.

    Used when the planner's verdict cannot be parsed, and also against an
    explicit "incomplete" verdict when ``trust_memory_coverage`` is enabled.
    """
    return ctx.working_memory.all_list_items_have_data()


class CommandOrchestrator:
    """Runs the plan → execute → evaluate → re-plan loop for one question at a time.

    The orchestrator itself holds no per-question state: every call to
    ``orchestrate`` builds a fresh ExecutionContext that each step receives
    and returns.
    """

    def __init__(
        self,
        planner: Planner,
        executor: Executor,
        config: OrchestratorConfig | None = None,
        extractors: ExtractorRegistry | None = None,
    ):
        self.planner = planner
        self.executor = executor
        self.config = config or OrchestratorConfig()
        self.safety = SafetyFilter(
            self.config.dangerous_patterns, self.config.extra_dangerous_patterns
        )
        self.extractors = extractors or ExtractorRegistry(
            raw_output_chars=self.config.raw_output_chars
        )

        if self.config.verbose_logging:
            from rich.console import Console

            self._console = Console(stderr=True)
        else:
            self._console = None

    def _debug_print(self, title: str, content: str, style: str = "dim") -> None:
        """Print a progress panel if verbose logging is enabled."""
        if self._console:
            from rich.panel import Panel

            self._console.print(Panel(content, title=f"[bold]{title}[/bold]", style=style))

    # --- Entry point ---

    def orchestrate(
        self,
        question: str,
        system_context: dict[str, Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> OrchestrationResult:
        """Answer ``question`` by orchestrating planner and executor calls.

        Args:
            question: Natural language question
            system_context: System facts (``os``, ``distro``) for the planner
            cancel_token: Token that aborts the run at the next suspension point

        Returns:
            OrchestrationResult. ``success`` is False for the fatal initial-plan
            failure and for cancellation; everything else degrades gracefully.

        Raises:
            ValueError: If question is empty
        """
        if not question or not question.strip():
            raise ValueError("Question cannot be empty")

        ctx = ExecutionContext(
            original_question=question.strip(),
            system_context=dict(system_context or {}),
            cancel_token=cancel_token or CancellationToken(),
        )
        self._debug_print("Question", ctx.original_question, style="cyan")

        try:
            plan = self.plan_initial_commands(ctx)
            ctx.current_plan.extend(plan.commands)
            ctx = self.run_loop(ctx)

            synthesis = self.synthesize_direct_answer(ctx)
            ctx.direct_answer = synthesis.direct_answer
            self._debug_print("Answer", ctx.direct_answer, style="green")
            return self.format_results(ctx)

        except InitialPlanError as e:
            logger.error("Orchestration aborted: %s", e)
            ctx.state = LoopState.ERROR
            return self.format_results(ctx, error=str(e))

        except OrchestrationCancelled as e:
            logger.info("Orchestration cancelled after %d iteration(s)", ctx.iteration)
            ctx.state = LoopState.ABORTED
            return self.format_results(ctx, error=str(e) or ctx.cancel_token.reason, cancelled=True)

    def run_loop(self, ctx: ExecutionContext) -> ExecutionContext:
        """Drive the state machine until completion, budget exhaustion, or no next step."""
        while True:
            ctx.cancel_token.raise_if_cancelled()

            if self._budget_exhausted(ctx):
                ctx.state = LoopState.ABORTED
                return ctx

            if ctx.current_plan:
                ctx.state = LoopState.EXECUTING
                ctx = self.execute_next(ctx)
                continue

            ctx.state = LoopState.EVALUATING
            verdict = self.is_task_complete(ctx)
            if verdict.is_complete:
                ctx.is_complete = True
                ctx.state = LoopState.COMPLETE
                return ctx

            ctx.state = LoopState.REPLANNING
            logger.debug(
                "Task incomplete (%s); discovered lists: %s",
                verdict.reasoning,
                ctx.working_memory.discovered.lists,
            )
            self._debug_print(
                "Task incomplete",
                f"{verdict.reasoning}\nLists: {ctx.working_memory.discovered.lists}",
                style="blue",
            )

            next_step = self.plan_next_commands(ctx, verdict.reasoning)
            if not next_step.commands:
                logger.info("Planner proposed no further commands; stopping")
                self._debug_print("Stopping", "Planner could not determine a next step", style="yellow")
                ctx.state = LoopState.ABORTED
                return ctx

            self._debug_print("Next commands", "\n".join(next_step.commands), style="green")
            ctx.current_plan.extend(next_step.commands)

    def _budget_exhausted(self, ctx: ExecutionContext) -> bool:
        if ctx.elapsed_ms() >= self.config.max_execution_time_ms:
            logger.warning("Time limit of %d ms exceeded", self.config.max_execution_time_ms)
            self._debug_print("Time limit exceeded", f"{ctx.elapsed_ms()} ms", style="yellow")
            return True
        if ctx.iteration >= self.config.max_iterations:
            logger.info("Iteration limit of %d reached", self.config.max_iterations)
            return True
        return False

    # --- Planner calls ---

    def _ask(self, ctx: ExecutionContext, prompt: str) -> str:
        ctx.cancel_token.raise_if_cancelled()
        ctx.metadata.ai_calls += 1
        response = self.planner.ask(prompt, ctx.system_context, ctx.cancel_token)
        ctx.cancel_token.raise_if_cancelled()
        return response

    def plan_initial_commands(self, ctx: ExecutionContext) -> InitialPlan:
        """Ask for the first batch of commands.

        Raises:
            InitialPlanError: If no valid ``{"commands": [...]}`` can be parsed.
        """
        prompt = build_initial_prompt(
            ctx.original_question, ctx.system_context, self.config.max_question_length
        )
        try:
            response = self._ask(ctx, prompt)
            plan = InitialPlan.model_validate(load_json_object(response, key="commands"))
        except OrchestrationCancelled:
            raise
        except Exception as e:
            raise InitialPlanError(f"Could not create initial plan: {e}") from e

        logger.debug("Initial plan: %s", plan.commands)
        self._debug_print("Initial plan", "\n".join(plan.commands) or "(empty)", style="magenta")
        return plan

    def is_task_complete(self, ctx: ExecutionContext) -> CompletionVerdict:
        """Judge completeness from working memory alone. Never raises on bad output."""
        prompt = build_completion_prompt(ctx.original_question, ctx.working_memory)
        try:
            response = self._ask(ctx, prompt)
        except OrchestrationCancelled:
            raise
        except Exception as e:
            logger.warning("Completeness check failed: %s", e)
            return self._completion_fallback(ctx)

        try:
            verdict = CompletionVerdict.model_validate(load_json_object(response, key="isComplete"))
        except ValueError as e:
            if looks_like_command(strip_fences(response or "")):
                logger.warning("Completeness check returned a command instead of JSON")
                return CompletionVerdict(is_complete=False, reasoning=COMMAND_INSTEAD_OF_JSON)
            logger.warning("Could not parse completeness verdict: %s", e)
            return self._completion_fallback(ctx)

        if (
            not verdict.is_complete
            and self.config.trust_memory_coverage
            and memory_covers_discovered_items(ctx)
        ):
            logger.info(
                "Overriding planner verdict %r: memory already covers %s",
                verdict.reasoning,
                ctx.working_memory.discovered.lists,
            )
            return CompletionVerdict(is_complete=True, reasoning="All discovered items have data")

        self._debug_print(
            "Completeness",
            f"complete={verdict.is_complete} {verdict.reasoning}".strip(),
            style="yellow",
        )
        return verdict

    def _completion_fallback(self, ctx: ExecutionContext) -> CompletionVerdict:
        if memory_covers_discovered_items(ctx):
            logger.info("Treating task as complete: every discovered item has extracted data")
            return CompletionVerdict(is_complete=True, reasoning="All discovered items have data")
        return CompletionVerdict(is_complete=False, reasoning=EVALUATION_FAILED)

    def plan_next_commands(self, ctx: ExecutionContext, reason: str) -> NextStep:
        """Ask for the next batch and merge any memory update. Empty on failure."""
        prompt = build_next_step_prompt(ctx.original_question, ctx.working_memory, reason)
        try:
            response = self._ask(ctx, prompt)
            next_step = NextStep.model_validate(load_json_object(response, key="commands"))
        except OrchestrationCancelled:
            raise
        except Exception as e:
            logger.warning("Could not plan next commands: %s", e)
            return NextStep()

        update = next_step.update_memory
        if update is not None:
            if update.hypothesis:
                ctx.working_memory.hypothesis = update.hypothesis
            if update.discovered:
                ctx.working_memory.discovered.merge(update.discovered)
        return next_step

    def synthesize_direct_answer(self, ctx: ExecutionContext) -> Synthesis:
        """Turn the final working memory into a literal answer. Never raises on bad output."""
        if not ctx.results:
            return Synthesis(direct_answer=NOTHING_EXECUTED_ANSWER)

        prompt = build_synthesis_prompt(ctx.original_question, ctx.working_memory)
        try:
            response = self._ask(ctx, prompt)
            return Synthesis.model_validate(load_json_object(response, key="directAnswer"))
        except OrchestrationCancelled:
            raise
        except Exception as e:
            logger.warning("Could not synthesize answer: %s", e)
            return Synthesis(direct_answer=SYNTHESIS_FAILED_ANSWER)

    # --- Execution ---

    def execute_next(self, ctx: ExecutionContext) -> ExecutionContext:
        """Pop one queued command, gate it, run it and extract its output."""
        command = ctx.current_plan.popleft()

        if self.safety.is_dangerous(command):
            ctx.results.append(CommandResult(command=command, error=BLOCKED_ERROR, skipped=True))
            ctx.metadata.blocked_commands.append(command)
            self._debug_print("Blocked", command, style="red")
        else:
            self._debug_print(
                f"Executing ({ctx.iteration + 1}/{self.config.max_iterations})",
                f"$ {command}",
                style="magenta",
            )
            ctx.cancel_token.raise_if_cancelled()
            try:
                outcome = self.executor.run(command, ctx.cancel_token)
            except OrchestrationCancelled:
                raise
            except Exception as e:
                logger.warning("Command %r failed to run: %s", command, e)
                ctx.results.append(CommandResult(command=command, error=str(e)))
            else:
                ctx.cancel_token.raise_if_cancelled()
                ctx.executed_commands.append(command)
                ctx.results.append(
                    CommandResult(command=command, output=outcome.output, success=outcome.success)
                )
                self.extract_data_from_output(ctx, command, outcome.output)

        ctx.iteration += 1
        return ctx

    def extract_data_from_output(self, ctx: ExecutionContext, command: str, output: str) -> None:
        self.extractors.apply(ctx.working_memory, command, output)

    def format_results(
        self,
        ctx: ExecutionContext,
        error: str | None = None,
        cancelled: bool = False,
    ) -> OrchestrationResult:
        return OrchestrationResult(
            success=error is None and bool(ctx.direct_answer),
            question=ctx.original_question,
            direct_answer=ctx.direct_answer,
            executed_commands=list(ctx.executed_commands),
            results=list(ctx.results),
            iterations=ctx.iteration,
            duration_ms=ctx.elapsed_ms(),
            state=ctx.state,
            ai_calls=ctx.metadata.ai_calls,
            blocked_commands=list(ctx.metadata.blocked_commands),
            error=error,
            cancelled=cancelled,
        )


def orchestrate(
    question: str,
    context: dict[str, Any],
    planner: Planner,
    executor: Executor,
    config: OrchestratorConfig | None = None,
    cancel_token: CancellationToken | None = None,
) -> dict[str, Any]:
    """Run one orchestration and return the result as a plain dict."""
    orchestrator = CommandOrchestrator(planner, executor, config)
    return orchestrator.orchestrate(question, context, cancel_token).to_dict()


__all__ = [
    "CommandOrchestrator",
    "OrchestrationCancelled",
    "memory_covers_discovered_items",
    "orchestrate",
]
