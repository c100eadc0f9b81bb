import os
import random
import shutil
import string
import subprocess

import pytest

from runstack.local.config import effective_settings as config
from runstack.local.errors import NotFound, ValidationRejected
from runstack.local.supervisor.sanitizer import (
    DANGEROUS_CHARS, shell_quote, validate_args, validate_command,
    validate_directory_path, validate_pid,
)

needs_sh = pytest.mark.skipif(not shutil.which("sh"), reason="POSIX sh not available")


def _echo_through_sh(value: str) -> str:
    result = subprocess.run(
        ["/bin/sh", "-c", f"printf %s {shell_quote(value)}"],
        capture_output=True, check=True,
    )
    return result.stdout.decode("utf-8", errors="surrogateescape")


#* --- shell_quote ---
def test_shell_quote_wraps_in_single_quotes():
    assert shell_quote("npm") == "'npm'"
    assert shell_quote("") == "''"


def test_shell_quote_escapes_embedded_quotes():
    assert shell_quote("it's") == "'it'\"'\"'s'"


@needs_sh
@pytest.mark.parametrize("value", [
    "",
    "'",
    "''''",
    "plain",
    "two words",
    "$(rm -rf /)",
    "`id`",
    "a;b&c|d",
    "$HOME ${PATH} $((1+1))",
    "back\\slash",
    "tab\there",
    "new\nline",
    "*?[glob]",
    "\"double\" and 'single'",
    "ünïcødé ✓",
    "--port=4321",
])
def test_shell_quote_round_trips_through_sh(value):
    assert _echo_through_sh(value) == value


@needs_sh
def test_shell_quote_round_trips_random_strings():
    rng = random.Random(1234)
    alphabet = string.printable + "'\"\\$`ßé€"
    for _ in range(200):
        value = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 40)))
        assert _echo_through_sh(value) == value


#* --- validate_command ---
@pytest.mark.parametrize("name", sorted(config.ALLOWED_COMMANDS))
def test_whitelisted_commands_are_accepted(name):
    validate_command(name)


@pytest.mark.parametrize("name", ["rm", "NPM", "npm ", "python", "bash", "curl"])
def test_unlisted_commands_are_rejected(name):
    with pytest.raises(ValidationRejected):
        validate_command(name)


def test_empty_command_is_rejected():
    with pytest.raises(ValidationRejected, match="empty"):
        validate_command("")


@pytest.mark.parametrize("name", ["/usr/bin/npm", "./npm", "bin\\npm", "../node"])
def test_path_like_commands_are_rejected(name):
    with pytest.raises(ValidationRejected, match="path separator"):
        validate_command(name)


def test_injection_fails_on_dangerous_character_before_whitelist():
    with pytest.raises(ValidationRejected, match="forbidden character"):
        validate_command("npm;reboot")


def test_random_strings_are_only_accepted_when_whitelisted():
    rng = random.Random(99)
    alphabet = string.ascii_letters + string.digits + "/\\;&|`$()<>\n\r -_."
    samples = ["".join(rng.choice(alphabet) for _ in range(rng.randint(1, 8))) for _ in range(500)]
    samples += [f"{name}{ch}" for name in config.ALLOWED_COMMANDS for ch in DANGEROUS_CHARS | {"/", "\\"}]
    for sample in samples:
        if sample in config.ALLOWED_COMMANDS:
            validate_command(sample)
            continue
        with pytest.raises(ValidationRejected):
            validate_command(sample)


#* --- validate_args ---
def test_normal_arguments_pass():
    validate_args(["run", "dev", "--port=4321", "--host", "0.0.0.0", "-p", "3000"])
    validate_args([])


@pytest.mark.parametrize("arg", ["a;b", "x&", "a|b", "`id`", "$HOME", "(x)", "<in", ">out", "a\nb", "a\rb"])
def test_arguments_with_shell_metacharacters_are_rejected(arg):
    with pytest.raises(ValidationRejected, match="argument 1"):
        validate_args(["run", arg])


def test_too_many_arguments_are_rejected():
    with pytest.raises(ValidationRejected, match="too many"):
        validate_args(["x"] * (config.MAX_ARGS + 1))


def test_argument_length_is_counted_in_bytes():
    validate_args(["a" * config.MAX_ARG_BYTES])
    with pytest.raises(ValidationRejected, match="exceeds"):
        validate_args(["é" * (config.MAX_ARG_BYTES // 2 + 1)])


#* --- validate_directory_path ---
def test_directory_is_resolved_to_real_path(tmp_path):
    target = tmp_path / "project"
    target.mkdir()
    link = tmp_path / "link"
    link.symlink_to(target)
    assert validate_directory_path(str(link)) == target.resolve()


def test_missing_directory_is_not_found(tmp_path):
    with pytest.raises(NotFound):
        validate_directory_path(str(tmp_path / "missing"))


def test_empty_directory_path_is_not_found():
    with pytest.raises(NotFound):
        validate_directory_path("")


def test_file_is_not_a_directory(tmp_path):
    file_path = tmp_path / "package.json"
    file_path.write_text("{}")
    with pytest.raises(ValidationRejected, match="not a directory"):
        validate_directory_path(str(file_path))


def test_parent_segments_are_rejected(tmp_path):
    (tmp_path / "a").mkdir()
    with pytest.raises(ValidationRejected, match="traversal"):
        validate_directory_path(str(tmp_path / "a" / ".." / "a"))


def test_null_bytes_are_rejected():
    with pytest.raises(ValidationRejected, match="null"):
        validate_directory_path("/tmp/\0evil")


#* --- validate_pid ---
@pytest.mark.parametrize("pid", [0, -5, 1, 10_000_001, True, "123"])
def test_reserved_and_invalid_pids_are_rejected(pid):
    with pytest.raises(ValidationRejected):
        validate_pid(pid)


def test_own_pid_is_rejected():
    with pytest.raises(ValidationRejected, match="own PID"):
        validate_pid(os.getpid())


def test_ordinary_pid_is_returned():
    assert validate_pid(12345) == 12345
