"""
otp - command-line HOTP/TOTP key vault
Usage:
    otp add <label> <secret> [--type hotp] [--issuer <name>]
    otp import <otpauth-uri | otpauth-migration-uri>
    otp get <key>
    otp list
    otp edit <key> [--label <label>] [--color R,G,B]
    otp remove <key>
    otp export [<key>] [--uri | --migration | --output <file>]
    otp init
"""

import argparse
import logging
import sys
from getpass import getpass

from otpvault import __version__, base32, codec
from otpvault.config import (
    KEYRING_SERVICE,
    clear_cached_password,
    get_cached_password,
    get_env_password,
    get_storage_path,
    get_store_backend,
    set_cached_password,
)
from otpvault.errors import OTPError, StoreError
from otpvault.migration import build_migration_uri
from otpvault.models import Algorithm, KeyRecord, OTPType, random_color
from otpvault.store import FileSecretStore, KeyringSecretStore
from otpvault.uri import build_uri, compose_label
from otpvault.vault import Vault, parse_any_uri

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """A user-facing failure; main() prints it and exits 1."""


# ==================== Passwords ====================

def get_password(prompt: str = "Enter master password: ") -> str:
    password = get_env_password() or get_cached_password()
    if password is None:
        password = getpass(prompt)
    return password


def create_password() -> str:
    password = get_env_password()
    if password:
        return password
    password = getpass("Create master password: ")
    confirm = getpass("Confirm master password: ")
    if password != confirm:
        raise CommandError("Passwords don't match")
    return password


# ==================== Vault ====================

def open_store(creating: bool = False):
    if get_store_backend() == "keyring":
        return KeyringSecretStore(KEYRING_SERVICE)

    path = get_storage_path()
    store = FileSecretStore(path)
    if path.exists():
        if store.is_encrypted():
            store.password = get_password()
    elif creating:
        print("Setting up encryption for OTP storage...")
        store.password = create_password()
    return store


def open_vault(creating: bool = False) -> Vault:
    store = open_store(creating)
    vault = Vault(store)
    try:
        vault.load_sync()
    except StoreError:
        clear_cached_password()
        raise
    if getattr(store, "password", None):
        set_cached_password(store.password)
    return vault


def find_key(vault: Vault, query: str) -> KeyRecord:
    try:
        return vault.find(query)
    except KeyError as e:
        raise CommandError(f"{e.args[0]}\nUse 'otp list' to see available keys") from None


def confirm(question: str) -> bool:
    return input(f"{question} [y/N]: ").strip().lower() == "y"


def parse_color(text: str) -> tuple[int, int, int]:
    """Accept '#RRGGBB' or 'R,G,B'."""
    text = text.strip()
    try:
        if text.startswith("#") and len(text) == 7:
            rgb = tuple(int(text[i:i + 2], 16) for i in (1, 3, 5))
        else:
            rgb = tuple(int(part) for part in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid color {text!r}") from None
    if len(rgb) != 3 or not all(0 <= c <= 255 for c in rgb):
        raise argparse.ArgumentTypeError(f"invalid color {text!r}, expected R,G,B in 0-255")
    return rgb


def describe(record: KeyRecord) -> str:
    details = f"{record.type.name}, {record.algorithm.value}, {record.digits} digits"
    if record.is_hotp:
        details += f", counter {record.counter}"
    else:
        details += f", {record.period}s"
    return f"{record.label} ({details})"


# ==================== Commands ====================

def cmd_add(args):
    """Add a key by hand"""
    try:
        base32.decode(args.secret)
    except OTPError as e:
        raise CommandError(str(e)) from None

    record = KeyRecord(
        type=OTPType(args.type),
        secret=args.secret,
        label=compose_label(args.issuer or "", args.label),
        algorithm=Algorithm(args.algorithm),
        digits=args.digits,
        period=args.period,
        counter=args.counter if args.type == OTPType.HOTP.value else 0,
        color=args.color or random_color(),
    )

    vault = open_vault(creating=True)
    if record in vault.records():
        print(f"'{record.label}' is already in the vault")
        return
    vault.add(record)
    vault.save_sync()
    print(f"✓ Added '{record.label}'")


def cmd_import(args):
    """Import keys from an otpauth:// or otpauth-migration:// URI"""
    records = parse_any_uri(args.uri)
    if not records:
        raise CommandError("No OTP entries found in the URI")

    print(f"Found {len(records)} OTP entries:\n")
    for i, record in enumerate(records, 1):
        print(f"{i}. {describe(record)}")
    print()

    if args.dry_run:
        print("Dry run - no secrets were imported")
        return
    if not args.yes and not confirm("Import all entries?"):
        print("Cancelled")
        return

    vault = open_vault(creating=True)
    added = vault.extend(records)
    vault.save_sync()
    for record in added:
        print(f"✓ Imported '{record.label}'")
    skipped = len(records) - len(added)
    if skipped:
        print(f"Skipped {skipped} already present")
    print(f"\n✓ Imported {len(added)} entries")


def cmd_get(args):
    """Print the current code for a key"""
    vault = open_vault()
    record = find_key(vault, args.key)
    code = vault.code(record.id)
    if record.is_hotp:
        # The counter moved, persist it before showing the code
        vault.save_sync()

    print(code.value)
    if args.verbose:
        if code.seconds_remaining is not None:
            print(f"Valid for {code.seconds_remaining}s")
        else:
            print(f"Next counter: {record.counter}")


def cmd_list(args):
    """List all stored keys"""
    vault = open_vault()
    records = vault.records()

    if not records:
        print("No OTP keys stored")
        print("Add one with: otp add <label> <secret>")
        return

    rows = [(r.label, r.type.name, r.algorithm.value, str(r.digits), r.id[:8]) for r in records]
    headers = ("Label", "Type", "Algorithm", "Digits", "Id")
    widths = [max(len(headers[i]), max(len(row[i]) for row in rows)) + 4 for i in range(len(headers))]

    print("".join(f"{h:<{w}}" for h, w in zip(headers, widths)).rstrip())
    print("-" * sum(widths))
    for row in rows:
        print("".join(f"{c:<{w}}" for c, w in zip(row, widths)).rstrip())


def cmd_remove(args):
    """Remove a key"""
    vault = open_vault()
    record = find_key(vault, args.key)

    if not args.force and not confirm(f"Remove '{record.label}'?"):
        print("Cancelled")
        return

    vault.remove(record.id)
    vault.save_sync()
    print(f"✓ Removed '{record.label}'")


def cmd_edit(args):
    """Change the label or color of a key"""
    if args.label is None and args.color is None:
        raise CommandError("Nothing to change, pass --label and/or --color")

    vault = open_vault()
    record = find_key(vault, args.key)
    if args.label is not None:
        vault.rename(record.id, args.label)
    if args.color is not None:
        vault.recolor(record.id, args.color)
    vault.save_sync()
    print(f"✓ Updated '{record.label}'")


def cmd_export(args):
    """Export keys (for backup or another authenticator)"""
    vault = open_vault()
    records = [find_key(vault, args.key)] if args.key else vault.records()
    if not records:
        raise CommandError("No OTP keys stored")

    if args.uri:
        for record in records:
            print(build_uri(record))
    elif args.migration:
        print(build_migration_uri(records))
    else:
        if not args.output:
            raise CommandError("Pass --output <file>, --uri or --migration")
        path = codec.export_file(records, args.output)
        print(f"✓ Exported {len(records)} keys to {path}")


def cmd_init(args):
    """Initialize or change master password"""
    if get_store_backend() != "file":
        raise CommandError("Master passwords only apply to the file store")

    path = get_storage_path()
    store = FileSecretStore(path)
    if path.exists() and store.is_encrypted():
        store.password = getpass("Enter current master password: ")

    new_password = getpass("Enter new master password: ")
    if new_password != getpass("Confirm new master password: "):
        raise CommandError("Passwords don't match")

    try:
        store.rekey(new_password)
    except StoreError:
        clear_cached_password()
        raise
    set_cached_password(new_password)
    print("✓ Master password updated")


# ==================== Main ====================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="otp",
        description="otp - command-line HOTP/TOTP key vault",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    add_parser = subparsers.add_parser("add", help="Add a key by hand")
    add_parser.add_argument("label", help="Account name shown for the key")
    add_parser.add_argument("secret", help="Base32 encoded secret key")
    add_parser.add_argument("--issuer", "-i", help="Issuer name (e.g., GitHub)")
    add_parser.add_argument("--type", "-t", choices=[t.value for t in OTPType], default=OTPType.TOTP.value)
    add_parser.add_argument("--algorithm", "-a", choices=[a.value for a in Algorithm], default=Algorithm.SHA1.value)
    add_parser.add_argument("--digits", "-d", type=int, default=6, help="Number of digits (default: 6)")
    add_parser.add_argument("--period", "-p", type=int, default=30, help="Time period in seconds (default: 30)")
    add_parser.add_argument("--counter", "-c", type=int, default=0, help="Initial HOTP counter (default: 0)")
    add_parser.add_argument("--color", type=parse_color, help="Display color as R,G,B or #RRGGBB")

    import_parser = subparsers.add_parser("import", help="Import from an otpauth:// or otpauth-migration:// URI")
    import_parser.add_argument("uri", help="otpauth:// URI or Google Authenticator export URI")
    import_parser.add_argument("--dry-run", "-n", action="store_true", help="Show what would be imported without saving")
    import_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    get_parser = subparsers.add_parser("get", help="Get OTP code")
    get_parser.add_argument("key", help="Label, label prefix or id of the key")
    get_parser.add_argument("--verbose", "-v", action="store_true", help="Show time remaining")

    subparsers.add_parser("list", help="List all stored keys")

    remove_parser = subparsers.add_parser("remove", help="Remove a key")
    remove_parser.add_argument("key", help="Key to remove")
    remove_parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation")

    edit_parser = subparsers.add_parser("edit", help="Edit the label or color of a key")
    edit_parser.add_argument("key", help="Key to edit")
    edit_parser.add_argument("--label", "-l", help="New label")
    edit_parser.add_argument("--color", type=parse_color, help="New color as R,G,B or #RRGGBB")

    export_parser = subparsers.add_parser("export", help="Export keys (for backup)")
    export_parser.add_argument("key", nargs="?", help="Only export this key")
    group = export_parser.add_mutually_exclusive_group()
    group.add_argument("--uri", action="store_true", help="Print otpauth:// URIs")
    group.add_argument("--migration", action="store_true", help="Print one otpauth-migration:// URI")
    group.add_argument("--output", "-o", help="Write a JSON export file")

    subparsers.add_parser("init", help="Initialize or change master password")

    return parser


COMMANDS = {
    "add": cmd_add,
    "import": cmd_import,
    "get": cmd_get,
    "list": cmd_list,
    "remove": cmd_remove,
    "edit": cmd_edit,
    "export": cmd_export,
    "init": cmd_init,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        COMMANDS[args.command](args)
    except (CommandError, ValueError) as e:
        logger.debug("%s failed", args.command, exc_info=True)
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
