"""
Tests for genpass.py
"""

import string
from unittest import mock

import pytest

import genpass


ALNUM = set(string.ascii_letters + string.digits)


# ═════════════════════════════════════════════════════════════════════════════
#  Character sets
# ═════════════════════════════════════════════════════════════════════════════

class TestExpandCharset:

    def test_alnum(self):
        assert set(genpass.expand_charset("[:alnum:]")) == ALNUM

    def test_classes_and_literals(self):
        chars = genpass.expand_charset("[:digit:]_-")
        assert set(chars) == set(string.digits) | {"_", "-"}

    def test_deduplicated_and_sorted(self):
        chars = genpass.expand_charset("[:lower:][:alpha:]")
        assert chars == "".join(sorted(set(string.ascii_letters)))

    def test_unknown_class(self):
        with pytest.raises(ValueError):
            genpass.expand_charset("[:emoji:]")


class TestCharsetFor:

    def test_default_has_symbols(self):
        chars = set(genpass.charset_for(True, environ={}))
        assert ALNUM <= chars
        assert set(string.punctuation) <= chars

    def test_no_symbols(self):
        assert set(genpass.charset_for(False, environ={})) == ALNUM

    def test_env_override(self):
        env = {"PASSWORD_STORE_CHARACTER_SET": "[:upper:]"}
        assert genpass.charset_for(True, environ=env) == string.ascii_uppercase

    def test_env_override_no_symbols(self):
        env = {"PASSWORD_STORE_CHARACTER_SET_NO_SYMBOLS": "[:digit:]"}
        assert genpass.charset_for(False, environ=env) == string.digits


class TestDefaultLength:

    def test_default(self):
        assert genpass.default_length({}) == 25

    def test_env_override(self):
        assert genpass.default_length({"PASSWORD_STORE_GENERATED_LENGTH": "40"}) == 40

    def test_bad_env_value(self):
        with pytest.raises(ValueError):
            genpass.default_length({"PASSWORD_STORE_GENERATED_LENGTH": "lots"})


# ═════════════════════════════════════════════════════════════════════════════
#  generate_password
# ═════════════════════════════════════════════════════════════════════════════

class TestGeneratePassword:

    def test_length(self):
        assert len(genpass.generate_password(32)) == 32

    def test_only_allowed_characters(self):
        pw = genpass.generate_password(200, charset="ab")
        assert set(pw) <= {"a", "b"}

    def test_no_symbols(self):
        pw = genpass.generate_password(200, symbols=False)
        assert set(pw) <= ALNUM

    def test_passwords_differ(self):
        assert genpass.generate_password(32) != genpass.generate_password(32)

    @pytest.mark.parametrize("length", [0, -5])
    def test_rejects_bad_length(self, length):
        with pytest.raises(ValueError):
            genpass.generate_password(length)

    def test_rejects_empty_charset(self):
        with pytest.raises(ValueError):
            genpass.generate_password(10, charset="")


# ═════════════════════════════════════════════════════════════════════════════
#  CLI
# ═════════════════════════════════════════════════════════════════════════════

class TestMain:

    def test_prints_one_password(self, capsys):
        assert genpass.main(["16"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert len(out) == 1
        assert len(out[0]) == 16

    def test_count(self, capsys):
        assert genpass.main(["12", "-c", "3"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert len(out) == 3
        assert all(len(pw) == 12 for pw in out)

    def test_no_symbols(self, capsys):
        assert genpass.main(["64", "--no-symbols"]) == 0
        assert set(capsys.readouterr().out.strip()) <= ALNUM

    def test_default_length_from_env(self, capsys):
        with mock.patch.dict("os.environ", {"PASSWORD_STORE_GENERATED_LENGTH": "30"}):
            assert genpass.main([]) == 0
        assert len(capsys.readouterr().out.strip()) == 30

    @mock.patch("genpass.err_console")
    def test_bad_length_exits_1(self, mock_err, capsys):
        assert genpass.main(["0"]) == 1
        assert capsys.readouterr().out == ""
        assert mock_err.print.called

    @mock.patch("genpass.err_console")
    def test_bad_count_exits_1(self, mock_err):
        assert genpass.main(["10", "-c", "0"]) == 1

    def test_non_numeric_length_is_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            genpass.main(["long"])
        assert exc_info.value.code == 2
