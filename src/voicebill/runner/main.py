"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..errors import NotAuthenticatedError, PersistenceError, require_owner
from ..matching import ClientMatcher, explain_similarity
from ..schemas.documents import Document, DocumentSelector, DocumentType
from ..schemas.intents import TargetClient
from ..schemas.modifications import ItemModifications
from ..services import ClientDirectory, IntentDispatcher, OperationResult, TransformService
from ..state_store import StateStore

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = [t.value for t in DocumentType]
SELECTORS = [s.value for s in DocumentSelector]


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="voicebill",
        description="Match dictated client names and derive invoices and estimates",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--owner",
        type=str,
        help="Owner (tenant) id; required for every command that reads records",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-config command
    init_parser = subparsers.add_parser("init-config", help="Write a default config file")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")

    # similarity command
    sim_parser = subparsers.add_parser("similarity", help="Score two names")
    sim_parser.add_argument("first", type=str)
    sim_parser.add_argument("second", type=str)

    # suggest / lookup commands
    suggest_parser = subparsers.add_parser("suggest", help="Rank clients against a name")
    suggest_parser.add_argument("name", type=str)
    lookup_parser = subparsers.add_parser("lookup", help="Find the single best client")
    lookup_parser.add_argument("name", type=str)

    # add-client / update-client commands
    add_parser = subparsers.add_parser("add-client", help="Resolve or create a client")
    add_parser.add_argument("name", type=str)
    _add_contact_args(add_parser)

    update_parser = subparsers.add_parser("update-client", help="Change a client's contact info")
    update_parser.add_argument("client_id", type=str)
    update_parser.add_argument("--name", type=str)
    _add_contact_args(update_parser)

    # import-documents command
    import_parser = subparsers.add_parser(
        "import-documents", help="Load documents from a JSON file"
    )
    import_parser.add_argument("path", type=Path, help="JSON list of documents")

    # search command
    search_parser = subparsers.add_parser("search", help="Find a client's documents")
    search_parser.add_argument("client_name", type=str)
    _add_source_args(search_parser)

    # next-number command
    number_parser = subparsers.add_parser("next-number", help="Preview the next document number")
    number_parser.add_argument(
        "--type", dest="document_type", choices=DOCUMENT_TYPES[:2], default="invoice"
    )
    number_parser.add_argument("--year", type=int, help="Defaults to the current year")

    # transform command
    transform_parser = subparsers.add_parser(
        "transform", help="Convert an invoice to an estimate or back"
    )
    transform_parser.add_argument(
        "--to", dest="target_type", choices=DOCUMENT_TYPES[:2], required=True
    )
    transform_parser.add_argument("--client", dest="client_name", type=str)
    transform_parser.add_argument("--number", dest="document_number", type=str)
    transform_parser.add_argument("--document-id", dest="document_id", type=str)
    _add_source_args(transform_parser)

    # clone command
    clone_parser = subparsers.add_parser("clone", help="Copy a client's document")
    clone_parser.add_argument("source_client", type=str)
    clone_parser.add_argument(
        "--for",
        dest="target_client",
        type=str,
        help="Client receiving the copy (default: same client)",
    )
    clone_parser.add_argument(
        "--modifications",
        type=str,
        help="JSON object or @file with update/add/remove items",
    )
    _add_source_args(clone_parser)

    # merge command
    merge_parser = subparsers.add_parser("merge", help="Combine several clients' documents")
    merge_parser.add_argument("source_clients", nargs="+", type=str)
    merge_parser.add_argument("--for", dest="target_client", type=str)
    merge_parser.add_argument("--type", dest="document_type", choices=DOCUMENT_TYPES[:2])
    merge_parser.add_argument(
        "--pick",
        action="append",
        default=[],
        metavar="SLOT=DOCUMENT_ID",
        help="Choose the document for an unresolved slot (0-based)",
    )
    merge_parser.add_argument("--execute", action="store_true", help="Create the merged draft")

    # intent command
    intent_parser = subparsers.add_parser("intent", help="Run an upstream intent payload")
    intent_parser.add_argument("intent_type", type=str)
    intent_parser.add_argument("payload", type=str, help="JSON object or @file")

    # job commands
    job_parser = subparsers.add_parser("job", help="Show a transform job")
    job_parser.add_argument("job_id", type=str)
    cancel_parser = subparsers.add_parser("cancel-job", help="Cancel a pending transform job")
    cancel_parser.add_argument("job_id", type=str)

    # status command
    subparsers.add_parser("status", help="Show record counts")

    # migrate command
    migrate_parser = subparsers.add_parser("migrate", help="Show or change the schema version")
    migrate_parser.add_argument(
        "--to", dest="target_version", type=int, help="Upgrade or downgrade to this version"
    )

    return parser


def _add_contact_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--email", type=str)
    parser.add_argument("--phone", type=str)
    parser.add_argument("--address", type=str)


def _add_source_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--type", dest="document_type", choices=DOCUMENT_TYPES)
    parser.add_argument("--selector", choices=SELECTORS)


def _read_json_arg(value: str) -> Any:
    """Parse a JSON literal, or the file named after '@'."""
    if value.startswith("@"):
        with open(value[1:]) as f:
            return json.load(f)
    return json.loads(value)


def _emit(result: Any, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict() if hasattr(result, "to_dict") else result, indent=2))


def _print_result(result: OperationResult, as_json: bool) -> int:
    """Print an operation result and return the exit code."""
    if as_json:
        _emit(result, True)
        return 0 if result.success else 1

    if result.success:
        if result.message:
            print(f"✓ {result.message}")
        if result.client:
            print(f"  👤 {result.client.name} ({result.client.id})")
        if result.document:
            _print_document(result.document)
        if result.job:
            print(f"  🔧 Job {result.job.id}: {result.job.status.value}")
        return 0

    print(f"❌ {result.error}")
    if result.candidates:
        print("  Which client did you mean?")
        for c in result.candidates:
            print(f"    • {c.name} ({c.similarity:.0%})")
    if result.suggestions:
        print("  Did you mean:")
        for s in result.suggestions:
            print(
                f"    • {s.name} ({s.similarity:.0%}) - "
                f"{s.invoice_count} invoice(s), {s.estimate_count} estimate(s)"
            )
    if result.documents:
        print("  Documents:")
        for doc in result.documents:
            _print_document(doc, indent="    ")
    return 1


def _print_document(doc: Document, indent: str = "  ") -> None:
    print(f"{indent}📄 {doc.type.label} {doc.number} [{doc.status}] total {doc.total} ({doc.id})")


def _open_store(config: Config) -> StateStore:
    return StateStore(config.state_db_path)


def cmd_init_config(config_path: Path, force: bool) -> int:
    """Write a default config file."""
    if config_path.exists() and not force:
        print(f"❌ {config_path} already exists (use --force to overwrite)")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote {config_path}")
    return 0


def cmd_migrate(config: Config, target_version: Optional[int]) -> int:
    """Report the schema version, moving it first when a target is given."""
    store = StateStore(config.state_db_path, run_migrations=False)
    version = store.migrate_to(target_version)
    print(f"✓ Schema version {version}")
    return 0


def cmd_similarity(first: str, second: str, as_json: bool) -> int:
    """Score two names and show how the score was reached."""
    breakdown = explain_similarity(first, second)
    if as_json:
        _emit(breakdown, True)
        return 0
    print(f"🔤 '{first}' vs '{second}': {breakdown.total:.3f} ({breakdown.tier})")
    if breakdown.tier == "fuzzy":
        print(f"  edit:        {breakdown.edit:.3f}")
        print(f"  phonetic:    {breakdown.phonetic:.3f}")
        print(f"  skeleton:    {breakdown.skeleton:.3f}")
        print(f"  word:        {breakdown.word:.3f}")
        print(f"  first letter bonus: {breakdown.first_letter_bonus:.1f}")
    return 0


def cmd_suggest(config: Config, owner_id: str, name: str, as_json: bool) -> int:
    """Rank the owner's clients against a name."""
    store = _open_store(config)
    result = ClientMatcher(config.matching).suggest(name, store.list_clients(owner_id))
    if as_json:
        _emit(result, True)
        return 0
    if not result.suggestions:
        print(f"❌ No clients similar to '{name}'")
        return 1
    print(f"🔍 Clients similar to '{name}':")
    for s in result.suggestions:
        marker = " ⭐" if result.exact_match and s.id == result.exact_match.id else ""
        print(f"  • {s.name} ({s.similarity:.0%}){marker}")
    return 0


def cmd_lookup(config: Config, owner_id: str, name: str, as_json: bool) -> int:
    """Resolve a name to the single best client."""
    from ..schemas.resolution import Resolved

    store = _open_store(config)
    found = ClientMatcher(config.matching).lookup_client(name, store.list_clients(owner_id))
    if not isinstance(found, Resolved):
        if as_json:
            _emit({"found": False, "reason": found.reason}, True)
        else:
            print(f"❌ {found.reason}")
        return 1

    match = found.value
    if as_json:
        _emit(
            {
                "found": True,
                "client": match.client.to_dict(),
                "similarity": round(match.similarity, 4),
                "needs_confirmation": match.needs_confirmation,
                "confirmation_message": match.confirmation_message,
            },
            True,
        )
        return 0
    print(f"✓ {match.client.name} ({match.similarity:.0%})")
    if match.needs_confirmation:
        print(f"  ⚠️  {match.confirmation_message}")
    return 0


def cmd_add_client(config: Config, owner_id: str, parsed: argparse.Namespace) -> int:
    """Resolve or create a client."""
    store = _open_store(config)
    client = ClientDirectory(store, config.matching).resolve_or_create(
        owner_id, parsed.name, email=parsed.email, phone=parsed.phone, address=parsed.address
    )
    return _print_result(OperationResult.ok(client=client), parsed.json)


def cmd_update_client(config: Config, owner_id: str, parsed: argparse.Namespace) -> int:
    """Update a client's contact fields."""
    store = _open_store(config)
    result = ClientDirectory(store, config.matching).update_contact(
        owner_id,
        parsed.client_id,
        name=parsed.name,
        email=parsed.email,
        phone=parsed.phone,
        address=parsed.address,
    )
    return _print_result(result, parsed.json)


def cmd_import_documents(config: Config, owner_id: str, path: Path) -> int:
    """
    Load documents from a JSON file.

    Each entry is a document dict plus either "client" (object with name and
    contact fields) or "client_name". Missing numbers are allocated.
    """
    with open(path) as f:
        entries = json.load(f)
    if not isinstance(entries, list):
        print("❌ Expected a JSON list of documents")
        return 1

    store = _open_store(config)
    service = TransformService(store, store, store, config)
    imported = 0
    for entry in entries:
        client_data = entry.get("client") or {"name": entry.get("client_name")}
        if not client_data.get("name"):
            print(f"  ⚠️  Skipping entry without a client: {entry.get('number', '?')}")
            continue
        client = service.directory.resolve_or_create(
            owner_id,
            client_data["name"],
            email=client_data.get("email"),
            phone=client_data.get("phone"),
            address=client_data.get("address"),
        )
        document = Document.from_dict(entry, owner_id=owner_id)
        document.client_id = client.id
        if not document.number:
            document.number = service.numbers.generate(owner_id, document.type)
        store.create_document(document)
        imported += 1
        print(f"  📄 {document.type.label} {document.number} for {client.name}")

    print(f"\n✓ Imported {imported} document(s)")
    return 0


def cmd_search(config: Config, owner_id: str, parsed: argparse.Namespace) -> int:
    """Find a client's documents."""
    store = _open_store(config)
    dispatcher = IntentDispatcher(TransformService(store, store, store, config))
    result = dispatcher.dispatch_raw(
        owner_id,
        "information_query",
        {
            "client_name": parsed.client_name,
            "document_type": parsed.document_type,
            "selector": parsed.selector,
        },
    )
    if result.success and not parsed.json:
        print(f"✓ {result.client.name}: {len(result.documents)} document(s)")
        for doc in result.documents:
            marker = " ⭐" if result.document and doc.id == result.document.id else ""
            print(f"  📄 {doc.type.label} {doc.number} total {doc.total}{marker}")
        return 0
    return _print_result(result, parsed.json)


def cmd_next_number(
    config: Config, owner_id: str, document_type: str, year: Optional[int]
) -> int:
    """Show the number the next document of this type would get."""
    store = _open_store(config)
    service = TransformService(store, store, store, config)
    print(service.numbers.generate(owner_id, DocumentType(document_type), year))
    return 0


def cmd_transform(config: Config, owner_id: str, parsed: argparse.Namespace) -> int:
    """Convert a document."""
    store = _open_store(config)
    service = TransformService(store, store, store, config)
    result = service.execute_transform(
        owner_id,
        DocumentType(parsed.target_type),
        source_document_id=parsed.document_id,
        document_number=parsed.document_number,
        client_name=parsed.client_name,
        document_type=parsed.document_type,
        selector=parsed.selector,
    )
    return _print_result(result, parsed.json)


def cmd_clone(config: Config, owner_id: str, parsed: argparse.Namespace) -> int:
    """Copy a document with optional item changes."""
    modifications = None
    if parsed.modifications:
        modifications = ItemModifications.from_dict(_read_json_arg(parsed.modifications))

    store = _open_store(config)
    service = TransformService(store, store, store, config)
    result = service.clone_document(
        owner_id,
        parsed.source_client,
        target_client=TargetClient(name=parsed.target_client) if parsed.target_client else None,
        document_type=parsed.document_type,
        selector=parsed.selector,
        modifications=modifications,
    )
    return _print_result(result, parsed.json)


def cmd_merge(config: Config, owner_id: str, parsed: argparse.Namespace) -> int:
    """Preview a merge, apply manual picks, and optionally create the draft."""
    store = _open_store(config)
    service = TransformService(store, store, store, config)
    preview = service.prepare_merge(
        owner_id,
        parsed.source_clients,
        document_type=parsed.document_type,
        target_client=TargetClient(name=parsed.target_client) if parsed.target_client else None,
    )

    for pick in parsed.pick:
        slot, _, document_id = pick.partition("=")
        if not slot.isdigit() or not document_id:
            print(f"❌ Invalid --pick {pick!r}, expected SLOT=DOCUMENT_ID")
            return 1
        picked = service.select_merge_document(preview, int(slot), document_id)
        if not picked.success:
            print(f"❌ Slot {slot}: {picked.error}")
            return 1

    if not parsed.execute:
        if parsed.json:
            _emit(preview, True)
        else:
            print("🧩 Merge preview")
            for slot in preview.slots:
                print(f"  [{slot.index}] {slot.client_name}: {slot.state.value}")
                if slot.selected:
                    _print_document(slot.selected, indent="      ")
                elif slot.reason:
                    print(f"      {slot.reason}")
                for doc in [] if slot.selected else slot.documents:
                    _print_document(doc, indent="      ")
                for s in slot.candidates + slot.suggestions:
                    print(f"      • {s.name} ({s.similarity:.0%})")
        return 0 if preview.ready else 1

    return _print_result(service.execute_merge(preview), parsed.json)


def cmd_intent(config: Config, owner_id: str, parsed: argparse.Namespace) -> int:
    """Dispatch an upstream intent payload."""
    try:
        payload = _read_json_arg(parsed.payload)
    except (OSError, ValueError) as e:
        print(f"❌ Invalid payload: {e}")
        return 1

    store = _open_store(config)
    dispatcher = IntentDispatcher(TransformService(store, store, store, config))
    result = dispatcher.dispatch_raw(owner_id, parsed.intent_type, payload)

    if isinstance(result, OperationResult):
        return _print_result(result, parsed.json)
    _emit(result, True)
    return 0 if result.ready else 1


def cmd_job(config: Config, owner_id: str, job_id: str, cancel: bool, as_json: bool) -> int:
    """Show or cancel a transform job."""
    store = _open_store(config)
    service = TransformService(store, store, store, config)
    result = service.cancel_job(owner_id, job_id) if cancel else service.get_job(owner_id, job_id)
    if result.success and not as_json:
        job = result.job
        print(f"🔧 Job {job.id}")
        print(f"  Status:     {job.status.value}")
        print(f"  Source:     {job.source.document_type.value} {job.source.document_id}")
        print(f"  Target:     {job.config.target_type.value}")
        print(f"  Generated:  {job.generated_document_id or '-'}")
        print(f"  Completed:  {job.completed_at or '-'}")
        return 0
    return _print_result(result, as_json)


def cmd_status(config: Config, owner_id: str) -> int:
    """Show record counts."""
    store = _open_store(config)
    stats = store.get_stats(owner_id)

    print("\n📊 Status")
    print("=" * 40)
    print(f"  Clients:     {stats['clients']}")
    for doc_type in DOCUMENT_TYPES:
        print(f"  {doc_type.capitalize() + 's:':<12} {stats['documents'].get(doc_type, 0)}")
    for status, count in sorted(stats["jobs"].items()):
        print(f"  Jobs {status}: {count}")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config, parsed.force)
    if parsed.command == "similarity":
        return cmd_similarity(parsed.first, parsed.second, parsed.json)

    # Load config
    try:
        config = load_config(parsed.config)
        errors = config.validate()
        if errors:
            raise ConfigValidationError("; ".join(errors))
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    if parsed.command == "migrate":
        try:
            return cmd_migrate(config, parsed.target_version)
        except PersistenceError as e:
            logger.error("Migration failed: %s", e)
            print("❌ Migration failed, see log for details")
            return 1

    try:
        owner_id = require_owner(parsed.owner)
    except NotAuthenticatedError as e:
        print(f"❌ {e}")
        return 1

    try:
        if parsed.command == "suggest":
            return cmd_suggest(config, owner_id, parsed.name, parsed.json)
        elif parsed.command == "lookup":
            return cmd_lookup(config, owner_id, parsed.name, parsed.json)
        elif parsed.command == "add-client":
            return cmd_add_client(config, owner_id, parsed)
        elif parsed.command == "update-client":
            return cmd_update_client(config, owner_id, parsed)
        elif parsed.command == "import-documents":
            return cmd_import_documents(config, owner_id, parsed.path)
        elif parsed.command == "search":
            return cmd_search(config, owner_id, parsed)
        elif parsed.command == "next-number":
            return cmd_next_number(config, owner_id, parsed.document_type, parsed.year)
        elif parsed.command == "transform":
            return cmd_transform(config, owner_id, parsed)
        elif parsed.command == "clone":
            return cmd_clone(config, owner_id, parsed)
        elif parsed.command == "merge":
            return cmd_merge(config, owner_id, parsed)
        elif parsed.command == "intent":
            return cmd_intent(config, owner_id, parsed)
        elif parsed.command == "job":
            return cmd_job(config, owner_id, parsed.job_id, False, parsed.json)
        elif parsed.command == "cancel-job":
            return cmd_job(config, owner_id, parsed.job_id, True, parsed.json)
        elif parsed.command == "status":
            return cmd_status(config, owner_id)
    except PersistenceError as e:
        logger.error("Storage error: %s", e)
        print("❌ Storage error, see log for details")
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
