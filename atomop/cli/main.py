"""CLI interface for atomop."""

import json
import logging
import sys

import click

from atomop.config import get_settings, load_env_or_exit
from atomop.errors import AtomicOperationError, UnsettledCurrency
from atomop.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """atomop - atomic operations against untrusted-callback protocols.

    Batch checks and ledger inspection work offline; commands that read the
    chain require ATOMOP_RPC_URL and ATOMOP_POSITION_MANAGER_ADDRESS.
    """
    if any(arg in ("-h", "--help") for arg in sys.argv[1:]):
        return

    load_env_or_exit()


@cli.command(name="check-batch")
@click.argument("batch_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--encode", "show_encoded", is_flag=True, help="Print the encoded calldata")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def check_batch(batch_file: str, show_encoded: bool, json_output: bool) -> None:
    """Validate a JSON batch description without submitting it.

    Prints the predicted worst-case currency deltas and whether every touched
    currency is closed. Exits with status 2 when the batch would be rejected.
    """
    from atomop.execution.accountant import predict_deltas, require_closed
    from atomop.execution.batch import ActionBatch

    try:
        with open(batch_file) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        click.echo(f"ERROR: {batch_file} is not valid JSON: {e}", err=True)
        raise SystemExit(2)

    try:
        batch = ActionBatch.from_dict(data)
    except AtomicOperationError as e:
        click.echo(f"ERROR: {e}", err=True)
        raise SystemExit(2)

    deltas = predict_deltas(batch.actions)
    closed_error: UnsettledCurrency | None = None
    try:
        require_closed(batch.actions, batch.native_value)
    except UnsettledCurrency as e:
        closed_error = e

    if json_output:
        payload = {
            "actions": [action.kind.value for action in batch.actions],
            "deadline": batch.deadline,
            "native_value": batch.native_value,
            "predicted_deltas": {asset: d.amount for asset, d in deltas.items()},
            "closed": closed_error is None,
            "unsettled": closed_error.assets if closed_error else [],
            "fingerprint": batch.fingerprint(),
        }
        if show_encoded:
            payload["calldata"] = "0x" + batch.encode().hex()
        click.echo(json.dumps(payload, indent=2))
    else:
        click.echo(f"Actions ({len(batch)}): " + " -> ".join(a.kind.value for a in batch.actions))
        click.echo(f"Deadline: {batch.deadline}  Native value: {batch.native_value}")
        click.echo("Predicted deltas (worst case):")
        for asset, delta in deltas.items():
            click.echo(f"  {asset}: {delta.amount:+d}")
        click.echo(f"Fingerprint: {batch.fingerprint()}")
        if show_encoded:
            click.echo(f"Calldata: 0x{batch.encode().hex()}")
        if closed_error is None:
            click.echo("✓ All touched currencies are settled")

    if closed_error is not None:
        click.echo(f"ERROR: {closed_error}", err=True)
        raise SystemExit(2)


@cli.command(name="db")
@click.argument("action", type=click.Choice(["init", "reset"]))
def db_command(action: str) -> None:
    """Database management commands.

    Actions:
        init   - Initialize database tables
        reset  - Drop and recreate all tables (WARNING: deletes all data)
    """
    setup_logging()
    from atomop.data import storage

    if action == "init":
        storage.init_db()
        click.echo("✓ Database initialized successfully")
        return

    click.confirm("WARNING: This will delete ALL data. Continue?", abort=True)
    storage.init_db()
    storage.Base.metadata.drop_all(bind=storage._engine)
    storage.Base.metadata.create_all(bind=storage._engine)
    click.echo("✓ Database reset successfully")


@cli.group()
def ledger() -> None:
    """Inspect the persisted position ledger."""


@ledger.command("show")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def ledger_show(json_output: bool) -> None:
    """Show tracked positions and per-(pool, owner) balances."""
    from atomop.data.storage import get_session, init_db
    from atomop.ledger.balances import LedgerBalanceTable
    from atomop.ledger.store import LedgerStore

    init_db()
    db_session = get_session()
    try:
        store = LedgerStore(db_session)
        records = store.load_positions()
        cleared = store.load_cleared()
    finally:
        db_session.close()

    balances = LedgerBalanceTable()
    for record in records:
        balances.credit(record.pool_id, record.owner, record.liquidity)

    if json_output:
        click.echo(
            json.dumps(
                {
                    "positions": [
                        {
                            "position_id": str(r.position_id),
                            "pool_id": r.pool_id,
                            "owner": r.owner,
                            "liquidity": str(r.liquidity),
                        }
                        for r in records
                    ],
                    "balances": [
                        {"pool_id": pool_id, "owner": owner, "liquidity": str(amount)}
                        for (pool_id, owner), amount in sorted(balances.get_all_balances().items())
                    ],
                    "cleared": [str(position_id) for position_id in cleared],
                },
                indent=2,
            )
        )
        return

    if cleared:
        click.echo(
            f"Cleared, may still hold liquidity ({len(cleared)}): "
            + ", ".join(f"#{position_id}" for position_id in cleared)
        )
    if not records:
        click.echo("No tracked positions.")
        return

    click.echo(f"Tracked positions ({len(records)}):")
    for r in records:
        click.echo(f"  #{r.position_id}  pool={r.pool_id[:10]}…  owner={r.owner}  liquidity={r.liquidity}")
    click.echo("Balances:")
    for (pool_id, owner), amount in sorted(balances.get_all_balances().items()):
        click.echo(f"  pool={pool_id[:10]}…  owner={owner}  {amount}")


@ledger.command("journal")
@click.option("--limit", default=20, type=int, help="Number of entries to show")
def ledger_journal(limit: int) -> None:
    """Show the most recent applied notifications."""
    from atomop.data.storage import get_session, init_db
    from atomop.ledger.store import LedgerStore

    init_db()
    db_session = get_session()
    try:
        entries = LedgerStore(db_session).recent_notifications(limit=limit)
        if not entries:
            click.echo("No notifications recorded.")
            return
        for entry in entries:
            click.echo(
                f"{entry.applied_at.isoformat()}  {entry.kind:<11}  #{entry.position_id}  "
                f"change={entry.balance_change}"
            )
    finally:
        db_session.close()


@ledger.command("discrepancies")
def ledger_discrepancies() -> None:
    """Compare persisted liquidity with the position manager (read-only)."""
    load_env_or_exit(require_chain=True)
    setup_logging()
    from atomop.data.storage import get_session, init_db
    from atomop.ledger.lifecycle import PositionLifecycleLedger
    from atomop.ledger.store import LedgerStore
    from atomop.services.chain import Web3PositionManager, build_web3

    settings = get_settings()
    init_db()
    db_session = get_session()
    try:
        store = LedgerStore(db_session)
        records = store.load_positions()
        cleared = store.load_cleared()
    finally:
        db_session.close()

    manager = Web3PositionManager(build_web3(settings), settings=settings)
    position_ledger = PositionLifecycleLedger(manager)
    position_ledger.restore(records, cleared=cleared)

    try:
        found = position_ledger.discrepancies()
    except AtomicOperationError as e:
        click.echo(f"ERROR: {e}", err=True)
        raise SystemExit(1)

    if not found:
        click.echo("✓ Ledger matches the position manager")
        return
    for position_id, (tracked, actual) in found.items():
        click.echo(f"#{position_id}: tracked={tracked} manager={actual}")
    raise SystemExit(1)


if __name__ == "__main__":
    cli()
