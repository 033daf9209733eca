#!/usr/bin/env python3
"""
Pass Setup Wizard: GPG key + password store

A terminal wizard that walks through:
  1. Checking for gpg, pass and git
  2. Picking (or generating) a GPG secret key
  3. Initializing the password store for that key
  4. Optionally putting the store under git
  5. Printing a quick guide to day-to-day use

Usage:
    python3 pass_setup_wizard.py

Set PASSWORD_STORE_DIR to use a store other than ~/.password-store.
"""

import subprocess
import os
import sys
import re
import shutil
from collections import namedtuple
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt, Confirm
from rich.table import Table
from rich import box
from rich.markup import escape
from rich.padding import Padding

console = Console()
err_console = Console(stderr=True)


# ─── Paths & Constants ───────────────────────────────────────────────────────
DEFAULT_STORE_DIR = Path.home() / ".password-store"
GPG_ID_FILE       = ".gpg-id"

GPG_LIST_SECRET = ["gpg", "--list-secret-keys", "--with-colons",
                   "--keyid-format", "LONG"]
GPG_KEYGEN      = ["gpg", "--full-generate-key"]

KEY_ID_LENGTH = 16

# (command, what it is, how to get it)
REQUIRED_TOOLS = (
    ("gpg",  "GnuPG (gpg)",            "sudo apt install gnupg"),
    ("pass", "pass (password-store)",  "sudo apt install pass"),
)

# Probed in order. The second item is the env var that must be set for the
# tool to be usable (None: always usable when installed).
CLIP_TOOLS = (
    ("wl-copy", "WAYLAND_DISPLAY"),
    ("xclip",   "DISPLAY"),
    ("pbcopy",  None),
)
CLIP_MISSING_NOTE = (
    "(No common clipboard tool like xclip or wl-copy detected. "
    "Install one for '-c' to work, e.g. 'sudo apt install xclip')"
)

# store_status() results
STORE_MISSING    = "missing"
STORE_NO_MARKER  = "no-marker"
STORE_CONFIGURED = "configured"
STORE_OTHER_KEY  = "other-key"

GIT_NOT_SET_UP = "Git was not initialized for the password store by this wizard."


# ─── Errors ──────────────────────────────────────────────────────────────────
class WizardError(Exception):
    """A fatal condition. main() prints it and exits 1."""


class MissingRequiredTool(WizardError):
    pass


class NoKeyAvailable(WizardError):
    pass


class KeyGenerationIncomplete(WizardError):
    pass


class StoreInitFailure(WizardError):
    pass


class InvalidMenuSelection(ValueError):
    pass


# ─── Shell Helpers ───────────────────────────────────────────────────────────
def sh(args, env=None):
    """Run a command, return stdout (empty string on failure)."""
    try:
        r = subprocess.run(args, capture_output=True, encoding="utf-8",
                           errors="replace", env=env)
    except OSError:
        return ""
    if r.returncode != 0:
        return ""
    return r.stdout.strip()


def sh_ok(args, env=None):
    """Return True if a command exits 0."""
    try:
        return subprocess.run(
            args, capture_output=True, encoding="utf-8", errors="replace", env=env
        ).returncode == 0
    except OSError:
        return False


def cmd_exists(name):
    """Check if a command exists on PATH."""
    return shutil.which(name) is not None


def store_env(store):
    """Environment for pass commands that must act on `store`."""
    return dict(os.environ, PASSWORD_STORE_DIR=str(store))


def reattach_tty():
    # When piped (curl ... | python3), stdin is the script itself and is
    # exhausted before any prompt runs. Reopen it from the real terminal.
    if sys.stdin.isatty():
        return
    try:
        sys.stdin = open("/dev/tty", "r")
    except OSError:
        pass  # no controlling terminal (CI, pytest)


# ─── Output Helpers ──────────────────────────────────────────────────────────
def phase(num, title, subtitle=""):
    text = f"[bold cyan]STEP {num}[/]  [bold white]{title}[/]"
    if subtitle:
        text += f"\n[dim]{escape(subtitle)}[/]"
    console.print()
    console.print(Panel(text, box=box.ROUNDED, border_style="cyan", padding=(0, 2)))


def ok(msg):
    console.print(f"  [green]\u2713[/] {msg}")


def info(msg):
    console.print(f"  [cyan]\u203a[/] {msg}")


def warn(msg):
    console.print(f"  [yellow]![/] {msg}")


def fail(msg):
    err_console.print(f"  [red]\u2717[/] {msg}")


def dim(msg):
    console.print(f"  [dim]{msg}[/]")


# ═════════════════════════════════════════════════════════════════════════════
BANNER = r"""
  ____                    ____       _
 |  _ \ __ _ ___ ___     / ___|  ___| |_ _   _ _ __
 | |_) / _` / __/ __|    \___ \ / _ \ __| | | | '_ \
 |  __/ (_| \__ \__ \     ___) |  __/ |_| |_| | |_) |
 |_|   \__,_|___/___/    |____/ \___|\__|\__,_| .__/
                 Wizard                       |_|
"""


# ═════════════════════════════════════════════════════════════════════════════
#  STEP 0: Welcome
# ═════════════════════════════════════════════════════════════════════════════
def welcome():
    console.print(Panel(
        f"[bold bright_cyan]{escape(BANNER)}[/]\n"
        "  [white]GPG-encrypted passwords with pass[/]\n",
        box=box.DOUBLE, border_style="bright_blue", padding=(0, 2),
    ))

    console.print("  This wizard sets up 'pass', the standard Unix password manager:\n")
    console.print("  [white]1.[/] Check that gpg, pass and git are installed")
    console.print("  [white]2.[/] Pick the GPG key your passwords are encrypted to")
    console.print("  [white]3.[/] Initialize the password store")
    console.print("  [white]4.[/] Optionally track the store with git")
    console.print()
    dim("Safe to re-run: finished steps are detected and skipped.")
    console.print()

    if not Confirm.ask("  [bold]Ready?[/]", default=True):
        console.print("\n  No worries. Run again whenever.\n")
        sys.exit(0)


# ═════════════════════════════════════════════════════════════════════════════
#  STEP 1: Preflight
# ═════════════════════════════════════════════════════════════════════════════
def preflight():
    """Check required and optional tools. Returns True if git is available."""
    phase(1, "Preflight Checks", "Making sure your system has what we need")

    for cmd, label, hint in REQUIRED_TOOLS:
        if not cmd_exists(cmd):
            raise MissingRequiredTool(
                f"{label} is not installed. Install it first "
                f"(e.g. '{hint}'). Aborting."
            )
        ok(f"{label} installed")

    if not cmd_exists("git"):
        warn("git is not installed. 'pass git' syncing/versioning will not be "
             "available (e.g. 'sudo apt install git').")
        return False
    ok("git installed")
    return True


# ═════════════════════════════════════════════════════════════════════════════
#  STEP 2: GPG Key
# ═════════════════════════════════════════════════════════════════════════════
class SecretKey(namedtuple("SecretKey", ["key_id", "uid"])):
    """One secret key from the keyring; `uid` is its first user id or None."""

    __slots__ = ()

    def label(self):
        if self.uid:
            return f"{self.key_id} ({self.uid})"
        return self.key_id


_ESCAPED_BYTE = re.compile(r"\\x([0-9A-Fa-f]{2})")


def clean_uid(field):
    """Decode gpg's \\xHH escapes (':' is written as \\x3a) and trim."""
    text = _ESCAPED_BYTE.sub(lambda m: chr(int(m.group(1), 16)), field)
    return text.strip(": \t")


def parse_secret_keys(listing):
    """
    Parse `gpg --list-secret-keys --with-colons` output.

    A `sec` record starts a key; the first `uid` record after it (and before
    the next `sec`) names it. Later uids for the same key, and all other
    record types, are ignored.
    """
    records = []
    seen = set()
    current = None  # [key_id, uid] of the key being accumulated

    for line in listing.splitlines():
        fields = line.split(":")
        tag = fields[0]
        if tag == "sec":
            current = None
            raw_id = fields[4] if len(fields) > 4 else ""
            if not raw_id:
                continue
            key_id = raw_id[-KEY_ID_LENGTH:]
            if key_id in seen:
                continue
            seen.add(key_id)
            current = [key_id, None]
            records.append(current)
        elif tag == "uid" and current is not None and current[1] is None:
            uid = clean_uid(fields[9]) if len(fields) > 9 else ""
            current[1] = uid or None

    return [SecretKey(key_id, uid) for key_id, uid in records]


def list_secret_keys():
    """Secret keys in keyring order; [] when there are none (or gpg fails)."""
    return parse_secret_keys(sh(GPG_LIST_SECRET))


def parse_menu_choice(raw, count):
    """Return the 0-based index for a 1-based menu answer, or raise."""
    raw = (raw or "").strip()
    if not re.fullmatch(r"[0-9]+", raw):
        raise InvalidMenuSelection(f"not a number: {raw!r}")
    choice = int(raw)
    if not 1 <= choice <= count:
        raise InvalidMenuSelection(f"{choice} is not between 1 and {count}")
    return choice - 1


def select_key(records, ask=None):
    """
    Resolve a listing to exactly one key.

    No keys raises NoKeyAvailable, a single key is taken as-is, and several
    keys get a numbered menu. `ask` is called with the prompt text and must
    return the operator's answer; the menu re-asks until the answer is a
    valid number, so a scripted `ask` must eventually give one.
    """
    if not records:
        raise NoKeyAvailable("No GPG secret keys found.")
    if len(records) == 1:
        return records[0]

    ask = ask or Prompt.ask
    info("Multiple GPG keys found. Choose the one to use with pass:")
    console.print()
    table = Table(box=box.SIMPLE, padding=(0, 2), show_header=False)
    table.add_column(style="bold white", justify="right")
    table.add_column(style="white")
    for num, record in enumerate(records, start=1):
        table.add_row(f"{num})", escape(record.label()))
    console.print(Padding(table, (0, 4)))

    while True:
        answer = ask("  [bold]Enter the number of the key to use[/]")
        try:
            return records[parse_menu_choice(answer, len(records))]
        except InvalidMenuSelection:
            warn("Invalid choice. Please enter a number from the list.")


def split_identity(uid):
    """Split 'Name <email>' into (name, email); missing parts are ''."""
    uid = (uid or "").strip()
    name = uid.split("<", 1)[0].strip()
    m = re.search(r"<([^<>]*)>", uid)
    email = m.group(1).strip() if m else ""
    return name, email


def resolve_identity(key_id):
    """Name and email from the key's first user id, ('', '') if unknown."""
    listing = sh(["gpg", "--list-keys", "--with-colons", key_id])
    for line in listing.splitlines():
        fields = line.split(":")
        if fields[0] == "uid" and len(fields) > 9:
            return split_identity(clean_uid(fields[9]))
    return "", ""


def generate_key():
    """Run gpg's interactive key generation, then re-read the keyring."""
    info("Starting GPG key generation. Please follow the prompts from GPG.")
    dim("Recommended: RSA and RSA, 4096 bits, and a strong passphrase")
    console.print()
    # gpg's exit status is not trusted here; the keyring is the answer.
    subprocess.run(GPG_KEYGEN)
    records = list_secret_keys()
    if not records:
        raise KeyGenerationIncomplete(
            "GPG key generation was not completed or no key was created. Aborting."
        )
    ok("New GPG key generated")
    return records


def acquire_key(ask=None, confirm=None):
    """Find or create the key to use. Returns (SecretKey, name, email)."""
    confirm = confirm or Confirm.ask
    phase(2, "GPG Key", "The key your passwords will be encrypted to")

    info("Checking for existing GPG keys...")
    records = list_secret_keys()

    if not records:
        warn("No GPG secret keys found.")
        console.print()
        if not confirm("  Generate a new GPG key now?", default=True):
            raise NoKeyAvailable(
                "A GPG key is required for pass. Generate one manually "
                "(gpg --full-generate-key) and re-run. Aborting."
            )
        records = generate_key()

    key = select_key(records, ask)
    if len(records) == 1:
        ok(f"Using the only available GPG key: {escape(key.label())}")
    else:
        ok(f"You selected GPG key: {escape(key.label())}")

    name, email = resolve_identity(key.key_id)
    if name and email:
        dim(f"Identity: {escape(name)} <{escape(email)}>")
    return key, name, email


# ═════════════════════════════════════════════════════════════════════════════
#  STEP 3: Password Store
# ═════════════════════════════════════════════════════════════════════════════
def store_dir(environ=None):
    """PASSWORD_STORE_DIR if set, else ~/.password-store."""
    environ = os.environ if environ is None else environ
    raw = environ.get("PASSWORD_STORE_DIR")
    if not raw:
        return DEFAULT_STORE_DIR
    return Path(raw).expanduser().absolute()


def read_store_key_ids(store):
    marker = Path(store) / GPG_ID_FILE
    if not marker.is_file():
        return []
    return [line.strip() for line in marker.read_text().splitlines()
            if line.strip()]


def key_matches(configured, key_id):
    """True if the store encrypts to exactly this key (id or fingerprint)."""
    if len(configured) != 1:
        return False
    return configured[0].upper().endswith(key_id.upper())


def store_status(store, key_id):
    store = Path(store)
    if not store.is_dir():
        return STORE_MISSING
    configured = read_store_key_ids(store)
    if not configured:
        return STORE_NO_MARKER
    if key_matches(configured, key_id):
        return STORE_CONFIGURED
    return STORE_OTHER_KEY


def init_store(store, key_id, confirm=None):
    """
    Make sure the store at `store` encrypts to `key_id`.

    Returns a one-line summary for the guide. Raises StoreInitFailure if
    `pass init` fails, or if a re-initialization leaves the marker file
    naming some other key.
    """
    confirm = confirm or Confirm.ask
    where = escape(str(store))
    phase(3, "Password Store", str(store))
    status = store_status(store, key_id)
    reinit = False

    if status == STORE_CONFIGURED:
        ok(f"Password store is already initialized with GPG ID: {key_id}")
        return (f"Password store at {store} was already configured "
                "with your selected GPG ID.")

    if status == STORE_OTHER_KEY:
        current = ", ".join(read_store_key_ids(store))
        warn(f"Password store is initialized with a different GPG ID ({escape(current)}).")
        console.print()
        if not confirm(
            f"  Re-initialize with {key_id}? This re-encrypts existing "
            "passwords (needs the old key's passphrase)",
            default=True,
        ):
            info("Skipping pass initialization. Manual re-initialization may be needed.")
            return f"Password store at {store} was left configured for {current}."
        reinit = True
    elif status == STORE_NO_MARKER:
        warn(f"Password store directory '{where}' exists but '{GPG_ID_FILE}' is missing.")
    else:
        info(f"Password store directory '{where}' does not exist.")

    info(f"Initializing password store for GPG ID: {key_id}...")
    result = subprocess.run(["pass", "init", key_id], env=store_env(store))
    if result.returncode != 0:
        raise StoreInitFailure(
            "Failed to initialize password store. "
            "Please check GPG prompts or errors. Aborting."
        )

    if reinit:
        if not key_matches(read_store_key_ids(store), key_id):
            raise StoreInitFailure(
                f"'pass init' finished but {store / GPG_ID_FILE} does not "
                f"name {key_id}. Aborting."
            )
        # pass init does not report which entries it re-encrypted.
        warn("Existing entries were not checked after re-encryption.")
        dim("Spot-check a few with: pass show <entry>")

    ok(f"Password store initialized at {where}")
    return (f"Password store was successfully initialized at {store} "
            f"using GPG ID {key_id}.")


# ═════════════════════════════════════════════════════════════════════════════
#  STEP 4: Git
# ═════════════════════════════════════════════════════════════════════════════
def configure_git_identity(store, name, email):
    """Set the store repo's local author. Skipped unless both are known."""
    if not name or not email:
        return False
    repo = ["git", "-C", str(store), "config", "--local"]
    return (sh_ok(repo + ["user.name", name])
            and sh_ok(repo + ["user.email", email]))


def setup_git(store, name, email, git_available, confirm=None):
    """Offer to put the store under git. Returns a summary line; never fatal."""
    phase(4, "Git", "Version control and syncing for the store")
    store = Path(store)
    where = escape(str(store))
    confirm = confirm or Confirm.ask

    if not git_available:
        info("git command not found, skipping git initialization for password store.")
        return GIT_NOT_SET_UP
    if not store.is_dir():
        info(f"Password store directory '{where}' does not exist, skipping git.")
        return GIT_NOT_SET_UP

    if not confirm(
        "  Initialize the password store with git for version control and syncing?",
        default=True,
    ):
        info("Skipping git initialization for password store.")
        return GIT_NOT_SET_UP

    if (store / ".git").exists():
        ok("Password store is already a git repository.")
        return f"Password store at {store} was already a git repository."

    info(f"Initializing git repository in {where}...")
    if subprocess.run(["pass", "git", "init"], env=store_env(store)).returncode != 0:
        fail("Failed to initialize git for password store.")
        return GIT_NOT_SET_UP
    ok("Git repository initialized for password store.")

    if configure_git_identity(store, name, email):
        info("Set git user.name and user.email for this store repo (from GPG key).")

    info("Consider adding a remote for backup/sync:")
    dim(f'  cd "{where}"')
    dim("  git remote add origin <your-remote-repo-url>")
    dim("  pass git push -u origin main  (or master)")
    return f"Password store at {store} was initialized as a git repository."


# ═════════════════════════════════════════════════════════════════════════════
#  STEP 5: Clipboard + Guide
# ═════════════════════════════════════════════════════════════════════════════
def detect_clipboard(environ=None):
    """Return (tool, note) for the first usable clipboard tool, or (None, hint)."""
    environ = os.environ if environ is None else environ
    for tool, needs in CLIP_TOOLS:
        if needs and not environ.get(needs):
            continue
        if cmd_exists(tool):
            return tool, f"('{tool}' detected, should work)"
    return None, CLIP_MISSING_NOTE


def guide_text(summary):
    s = {k: escape(str(v)) for k, v in summary.items()}
    return (
        f"[dim]Wizard run on: {s['run_date']}[/]\n\n"
        "[bold]Setup summary[/]\n"
        f"  GPG key for encryption:   {s['key']}\n"
        f"  Password store location:  {s['store']}\n"
        f"  Store:                    {s['store_note']}\n"
        f"  Git integration:          {s['git_note']}\n\n"
        "[bold]1. Store a new password[/]\n"
        "   [dim]pass insert websites/mybank.com/username[/]\n"
        "   Entries are organized like folders, e.g. 'services/email/personal'.\n\n"
        "[bold]2. Store multi-line info (password + notes)[/]\n"
        "   [dim]pass insert -m websites/myservice/info[/]\n"
        "   Password on the first line, notes below. Ctrl+D to finish.\n\n"
        "[bold]3. Generate and store a password[/]\n"
        "   [dim]pass generate streaming/netflix_account 24[/]\n\n"
        "[bold]4. Show a password[/]\n"
        "   [dim]pass websites/mybank.com/username[/]\n\n"
        "[bold]5. Copy a password to the clipboard[/] (cleared after 45 seconds)\n"
        "   [dim]pass -c websites/mybank.com/username[/]\n"
        f"   {s['clip_note']}\n\n"
        "[bold]6. List stored passwords[/]\n"
        "   [dim]pass[/]  (or [dim]pass ls[/])\n\n"
        "[bold]7. Find a password by name[/]\n"
        "   [dim]pass find mybank[/]\n\n"
        "[dim]Back up your GPG key securely and, if using git, your store "
        "repository. See 'man pass' for more.[/]"
    )


def print_guide(summary):
    console.print()
    console.print(Panel(
        guide_text(summary),
        title="[bold green] pass: Quick Guide [/]",
        border_style="green",
        box=box.DOUBLE,
        padding=(1, 2),
    ))
    console.print()


# ═════════════════════════════════════════════════════════════════════════════
#  Main
# ═════════════════════════════════════════════════════════════════════════════
def main():
    reattach_tty()
    try:
        welcome()

        git_available = preflight()

        key, name, email = acquire_key()

        store = store_dir()
        store_note = init_store(store, key.key_id)

        git_note = setup_git(store, name, email, git_available)

        _, clip_note = detect_clipboard()

        print_guide({
            "run_date": datetime.now().strftime("%a %d %b %Y %H:%M"),
            "key": key.label(),
            "store": store,
            "store_note": store_note,
            "git_note": git_note,
            "clip_note": clip_note,
        })
        ok("Setup finished.")

    except WizardError as e:
        fail(escape(str(e)))
        sys.exit(1)
    except (KeyboardInterrupt, EOFError):
        console.print("\n\n  [dim]Cancelled. Run again whenever you're ready.[/]\n")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n  [red]Something broke: {escape(str(e))}[/]")
        console.print("  [dim]Re-run the wizard. It's safe to retry.[/]\n")
        raise


if __name__ == "__main__":
    main()
