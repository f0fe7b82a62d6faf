"""
Command-line interface for the marketplace task workflow engine.

State lives in JSON files under a data directory. Every action runs as the
user given with ``--as USER_ID``:
- Clients post tasks and approve, revise or dispute deliveries
- Freelancers accept, start, submit and release tasks
- Admins review, assign, run QA, resolve disputes and release payments
"""

import functools
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import PlatformSettings, load_settings
from .errors import NotFound, WorkflowError
from .models.task import Task, TaskStatus
from .models.user import Actor, User, UserRole
from .storage import Stores
from .workflows.fee_calculator import compute_fees
from .workflows.orchestrator import OperationResult, WorkflowOrchestrator

console = Console()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


@dataclass
class CliContext:
    settings: PlatformSettings
    actor_id: Optional[str] = None
    _orchestrator: Optional[WorkflowOrchestrator] = None

    @property
    def orchestrator(self) -> WorkflowOrchestrator:
        if self._orchestrator is None:
            stores = Stores.json_files(self.settings.data_dir)
            self._orchestrator = WorkflowOrchestrator(stores, settings=self.settings)
        return self._orchestrator

    def actor(self) -> Actor:
        """Resolve ``--as`` to a stored user."""
        if not self.actor_id:
            raise click.UsageError("Pass --as USER_ID to act as a user")
        try:
            return self.orchestrator.get_user(self.actor_id).as_actor()
        except NotFound:
            raise click.UsageError(f"Unknown user: {self.actor_id}") from None


pass_context = click.make_pass_decorator(CliContext)


def workflow_errors(func):
    """Report workflow errors as a CLI error with exit code 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except WorkflowError as e:
            raise click.ClickException(f"[{e.code}] {e.message}") from e
    return wrapper


def print_result(result: OperationResult, message: str) -> None:
    console.print(f"[green]{message}[/green]")
    console.print(f"Status: {result.task.status.value}")
    failed = [o for o in result.effects if not o.ok]
    if failed:
        console.print(f"[yellow]{len(failed)} notification(s) could not be delivered[/yellow]")


def task_table(tasks: list[Task]) -> Table:
    table = Table(title="Tasks")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Budget", justify="right")
    table.add_column("Freelancer")
    for task in tasks:
        table.add_row(
            task.id,
            task.title,
            task.category.value,
            task.status.value,
            str(task.budget),
            task.freelancer_id or "-",
        )
    return table


@click.group()
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory holding the JSON data files")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="YAML settings file")
@click.option("--as", "actor_id", default=None, help="ID of the acting user")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__, prog_name="marketplace")
@click.pass_context
def cli(ctx, data_dir, config_path, actor_id, verbose):
    """Marketplace task workflow engine."""
    configure_logging(verbose)
    try:
        settings = load_settings(config_path)
    except WorkflowError as e:
        raise click.ClickException(f"[{e.code}] {e.message}") from e
    if data_dir is not None:
        settings = replace(settings, data_dir=data_dir)
    ctx.obj = CliContext(settings=settings, actor_id=actor_id)


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------

@cli.group()
def user():
    """Manage platform users."""


@user.command("add")
@click.argument("name")
@click.option("--role", type=click.Choice([r.value for r in UserRole]), default="client")
@click.option("--email", default="")
@click.option("--id", "user_id", default=None, help="Explicit user ID")
@pass_context
@workflow_errors
def user_add(obj: CliContext, name, role, email, user_id):
    """Register a client or admin."""
    record = User(name=name, email=email, role=UserRole(role))
    if user_id:
        record.id = user_id
    created = obj.orchestrator.register_user(record)
    console.print(f"Registered {created.role.value} {created.id}")


@cli.group()
def freelancer():
    """Manage freelancer profiles."""


@freelancer.command("add")
@click.argument("name")
@click.option("--skill", "skills", multiple=True, help="Task category the freelancer can take")
@click.option("--email", default="")
@click.option("--id", "user_id", default=None, help="Explicit user ID")
@click.option("--performance", type=click.FloatRange(0, 100), default=50.0, show_default=True)
@click.option("--completion-rate", type=click.FloatRange(0, 100), default=None)
@click.option("--max-tasks", type=click.IntRange(min=1), default=None)
@pass_context
@workflow_errors
def freelancer_add(obj: CliContext, name, skills, email, user_id, performance, completion_rate, max_tasks):
    """Register a freelancer."""
    record = User(
        name=name,
        email=email,
        role=UserRole.FREELANCER,
        skills=set(skills),
        performance_score=performance,
        on_time_completion_rate=completion_rate,
        max_active_tasks=(
            obj.settings.default_max_active_tasks if max_tasks is None else max_tasks
        ),
    )
    if user_id:
        record.id = user_id
    created = obj.orchestrator.register_user(record)
    console.print(f"Registered freelancer {created.id}")


@freelancer.command("list")
@pass_context
def freelancer_list(obj: CliContext):
    """List freelancers with their workload."""
    freelancers = obj.orchestrator.stores.users.find_many(role=UserRole.FREELANCER)

    table = Table(title="Freelancers")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Skills")
    table.add_column("Score", justify="right")
    table.add_column("Workload", justify="right")
    table.add_column("Status")
    for f in sorted(freelancers, key=lambda u: u.created_at):
        table.add_row(
            f.id,
            f.name,
            ", ".join(sorted(f.skills)),
            f"{f.performance_score:.0f}",
            f"{f.current_active_tasks}/{f.max_active_tasks}",
            f.status.value,
        )
    console.print(table)


# ----------------------------------------------------------------------
# Tasks
# ----------------------------------------------------------------------

@cli.group()
def task():
    """Post and work on tasks."""


@task.command("create")
@click.option("--title", required=True)
@click.option("--description", required=True)
@click.option("--category", required=True, help="video-editing, web-development, design, writing or other")
@click.option("--budget", required=True)
@click.option("--deadline", required=True, help="ISO 8601 date or datetime")
@click.option("--priority", type=click.Choice(["low", "medium", "high", "urgent"]), default="medium")
@click.option("--revision-limit", type=int, default=None)
@pass_context
@workflow_errors
def task_create(obj: CliContext, title, description, category, budget, deadline, priority, revision_limit):
    """Post a new task as a client."""
    payload = {
        "title": title,
        "description": description,
        "category": category,
        "budget": budget,
        "deadline": deadline,
        "priority": priority,
    }
    if revision_limit is not None:
        payload["revision_limit"] = revision_limit
    result = obj.orchestrator.create_task(obj.actor(), payload)
    print_result(result, f"Created task {result.task.id}")


@task.command("list")
@click.option("--status", type=click.Choice([s.value for s in TaskStatus]), default=None)
@click.option("--mine", is_flag=True, help="Only tasks of the acting user")
@pass_context
@workflow_errors
def task_list(obj: CliContext, status, mine):
    """List tasks."""
    filters = {"status": TaskStatus(status) if status else None}
    if mine:
        actor = obj.actor()
        if actor.role == UserRole.CLIENT:
            filters["client_id"] = actor.id
        elif actor.role == UserRole.FREELANCER:
            filters["freelancer_id"] = actor.id
    tasks = obj.orchestrator.list_tasks(**filters)
    if not tasks:
        console.print("No tasks found.")
        return
    console.print(task_table(tasks))


@task.command("show")
@click.argument("task_id")
@pass_context
@workflow_errors
def task_show(obj: CliContext, task_id):
    """Show one task with its milestones and submissions."""
    found = obj.orchestrator.get_task(task_id)

    table = Table(title=f"Task {found.id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Title", found.title)
    table.add_row("Category", found.category.value)
    table.add_row("Status", found.status.value)
    table.add_row("Priority", found.priority.value)
    table.add_row("Client", found.client_id)
    table.add_row("Freelancer", found.freelancer_id or "-")
    table.add_row("Budget", str(found.budget))
    table.add_row("Deadline", found.deadline.isoformat() if found.deadline else "-")
    table.add_row("Revisions", f"{found.revisions_used}/{found.revision_limit}")
    for milestone, stamp in found.workflow_timestamps.items():
        table.add_row(milestone, stamp.isoformat())
    for note in found.admin_notes:
        table.add_row("Note", note)
    console.print(table)

    for submission in obj.orchestrator.submissions_for(found.id):
        console.print(
            f"{submission.id} ({submission.submission_type.value}) "
            f"qa={submission.qa_status.value} client={submission.client_review_status.value}"
        )


@task.command("accept")
@click.argument("task_id")
@pass_context
@workflow_errors
def task_accept(obj: CliContext, task_id):
    """Claim an open task as a freelancer."""
    result = obj.orchestrator.accept_task(obj.actor(), task_id)
    print_result(result, f"Accepted task {task_id}")


@task.command("start")
@click.argument("task_id")
@pass_context
@workflow_errors
def task_start(obj: CliContext, task_id):
    """Start work on an assigned task."""
    result = obj.orchestrator.start_task(obj.actor(), task_id)
    print_result(result, f"Started task {task_id}")


@task.command("submit")
@click.argument("task_id")
@click.option("--deliverable", "deliverables", multiple=True, required=True, help="URL or file reference")
@click.option("--comments", default="")
@pass_context
@workflow_errors
def task_submit(obj: CliContext, task_id, deliverables, comments):
    """Hand in work for QA."""
    result = obj.orchestrator.submit_work(obj.actor(), task_id, list(deliverables), comments)
    print_result(result, f"Submitted {result.submission.id} for task {task_id}")


@task.command("resume")
@click.argument("task_id")
@pass_context
@workflow_errors
def task_resume(obj: CliContext, task_id):
    """Resume work after QA asked for changes."""
    result = obj.orchestrator.resume_revision(obj.actor(), task_id)
    print_result(result, f"Resumed task {task_id}")


@task.command("release")
@click.argument("task_id")
@click.option("--reason", default="")
@pass_context
@workflow_errors
def task_release(obj: CliContext, task_id, reason):
    """Give an assigned task back to the pool."""
    result = obj.orchestrator.release_task(obj.actor(), task_id, reason)
    print_result(result, f"Released task {task_id}")


@task.command("cancel")
@click.argument("task_id")
@click.option("--reason", default="")
@pass_context
@workflow_errors
def task_cancel(obj: CliContext, task_id, reason):
    """Cancel a task as its client or an admin."""
    result = obj.orchestrator.cancel_task(obj.actor(), task_id, reason)
    print_result(result, f"Cancelled task {task_id}")


# ----------------------------------------------------------------------
# Client
# ----------------------------------------------------------------------

@cli.group()
def client():
    """Review delivered work."""


@client.command("approve")
@click.argument("task_id")
@click.option("--feedback", default="")
@pass_context
@workflow_errors
def client_approve(obj: CliContext, task_id, feedback):
    """Approve a delivery; payment goes into escrow."""
    result = obj.orchestrator.approve_delivery(obj.actor(), task_id, feedback)
    payment = result.payment
    print_result(result, f"Approved task {task_id}")
    console.print(
        f"Payment {payment.id}: fee {payment.platform_fee}, payout {payment.freelancer_payout}"
    )


@client.command("revise")
@click.argument("task_id")
@click.option("--feedback", default="")
@pass_context
@workflow_errors
def client_revise(obj: CliContext, task_id, feedback):
    """Request a revision of delivered work."""
    result = obj.orchestrator.request_revision(obj.actor(), task_id, feedback)
    print_result(
        result,
        f"Revision {result.task.revisions_used}/{result.task.revision_limit} requested",
    )


@client.command("dispute")
@click.argument("task_id")
@click.option("--reason", required=True)
@pass_context
@workflow_errors
def client_dispute(obj: CliContext, task_id, reason):
    """Dispute a delivery."""
    result = obj.orchestrator.raise_dispute(obj.actor(), task_id, reason)
    print_result(result, f"Disputed task {task_id}")


# ----------------------------------------------------------------------
# Admin
# ----------------------------------------------------------------------

@cli.group()
def admin():
    """Supervise the task workflow."""


@admin.command("review")
@click.argument("task_id")
@click.option("--approve/--reject", default=True)
@click.option("--notes", default="")
@pass_context
@workflow_errors
def admin_review(obj: CliContext, task_id, approve, notes):
    """Approve or reject a newly posted task."""
    result = obj.orchestrator.admin_review(obj.actor(), task_id, approve, notes)
    print_result(result, f"{'Approved' if approve else 'Rejected'} task {task_id}")


@admin.command("assign")
@click.argument("task_id")
@click.argument("freelancer_id")
@pass_context
@workflow_errors
def admin_assign(obj: CliContext, task_id, freelancer_id):
    """Assign a task to a specific freelancer."""
    result = obj.orchestrator.admin_assign(obj.actor(), task_id, freelancer_id)
    print_result(result, f"Assigned task {task_id} to {freelancer_id}")


@admin.command("auto-assign")
@click.argument("task_id")
@pass_context
@workflow_errors
def admin_auto_assign(obj: CliContext, task_id):
    """Assign the best-matched freelancer."""
    result = obj.orchestrator.auto_assign(obj.actor(), task_id)
    print_result(result, f"Assigned task {task_id} to {result.task.freelancer_id}")


@admin.command("recommend")
@click.argument("task_id")
@click.option("--limit", type=int, default=5, show_default=True)
@pass_context
@workflow_errors
def admin_recommend(obj: CliContext, task_id, limit):
    """Show the best-scoring freelancers for a task."""
    matches = obj.orchestrator.recommendations(task_id, limit=limit)
    if not matches:
        console.print("No eligible freelancers.")
        return

    table = Table(title=f"Candidates for {task_id}")
    table.add_column("Freelancer", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Score", justify="right")
    table.add_column("Workload", justify="right")
    for match in matches:
        table.add_row(
            match.freelancer_id,
            match.freelancer_name,
            str(match.score),
            f"{match.current_active_tasks}/{match.max_active_tasks}",
        )
    console.print(table)


@admin.command("reassign")
@click.argument("task_id")
@click.argument("freelancer_id")
@click.option("--reason", default="")
@pass_context
@workflow_errors
def admin_reassign(obj: CliContext, task_id, freelancer_id, reason):
    """Move a task to another freelancer."""
    result = obj.orchestrator.reassign(obj.actor(), task_id, freelancer_id, reason)
    print_result(result, f"Reassigned task {task_id} to {freelancer_id}")


@admin.command("qa")
@click.argument("task_id")
@click.option("--approve/--reject", default=True)
@click.option("--feedback", default="")
@pass_context
@workflow_errors
def admin_qa(obj: CliContext, task_id, approve, feedback):
    """Pass submitted work to the client or send it back."""
    result = obj.orchestrator.qa_review(obj.actor(), task_id, approve, feedback)
    print_result(result, f"QA {'approved' if approve else 'rejected'} task {task_id}")


@admin.command("resolve")
@click.argument("task_id")
@click.option("--rework/--cancel", default=True)
@click.option("--notes", default="")
@pass_context
@workflow_errors
def admin_resolve(obj: CliContext, task_id, rework, notes):
    """Resolve a dispute."""
    result = obj.orchestrator.resolve_dispute(obj.actor(), task_id, rework, notes)
    print_result(result, f"Resolved dispute on task {task_id}")


@admin.command("release-payment")
@click.argument("payment_id")
@pass_context
@workflow_errors
def admin_release_payment(obj: CliContext, payment_id):
    """Release an escrowed payment to the freelancer."""
    result = obj.orchestrator.release_payment(obj.actor(), payment_id)
    console.print(f"[green]Released payment {result.payment.id}[/green]")


@admin.command("stats")
@pass_context
def admin_stats(obj: CliContext):
    """Show task statistics."""
    stats = obj.orchestrator.task_statistics()

    table = Table(title="Task Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Total tasks", str(stats["total_tasks"]))
    for status, count in sorted(stats["by_status"].items()):
        table.add_row(f"  {status}", str(count))
    table.add_row("Overdue", str(stats["overdue_count"]))
    table.add_row("Avg completion (h)", f"{stats['avg_completion_time_hours']:.1f}")
    table.add_row("In escrow", stats["escrowed_total"])
    table.add_row("Platform fees", stats["platform_fees_total"])
    console.print(table)


# ----------------------------------------------------------------------
# Fees
# ----------------------------------------------------------------------

@cli.command()
@click.argument("budget")
@click.option("--commission", default=None, help="Commission percentage (defaults to configured value)")
@pass_context
@workflow_errors
def fees(obj: CliContext, budget, commission):
    """Preview the fee split for a budget."""
    pct = commission if commission is not None else obj.settings.platform_commission_pct
    split = compute_fees(budget, pct)
    console.print(f"Budget: {split.budget}")
    console.print(f"Platform fee ({split.commission_pct}%): {split.fee}")
    console.print(f"Freelancer payout: {split.payout}")


def main():
    cli()


if __name__ == "__main__":
    main()
