import hashlib
from unittest import mock

import pytest
from redis.exceptions import NoScriptError, ResponseError

import redshelve
from redshelve import LUA_DIR, Lua, Model, attribute


ECHO = """\
-- returns its first key and argument
local key = KEYS[1]

    -- indented comment
    return {key, ARGV[1]}
"""


@pytest.fixture
def script_dir(tmp_path):
    (tmp_path / "echo.lua").write_text(ECHO, encoding="utf-8")
    return tmp_path


def test_scripts_are_minified_and_fingerprinted(script_dir):
    lua = Lua(script_dir, mock.Mock())
    body, sha = lua.script("echo")

    assert "--" not in body
    assert body == "local key = KEYS[1]\nreturn {key, ARGV[1]}\n"
    assert sha == hashlib.sha1(body.encode("utf-8")).hexdigest()


def test_scripts_are_read_once(script_dir):
    lua = Lua(script_dir, mock.Mock())
    first = lua.script("echo")
    (script_dir / "echo.lua").write_text("return 1", encoding="utf-8")
    assert lua.script("echo") is first


def test_run_prefers_the_fingerprint(script_dir):
    client = mock.Mock()
    client.evalsha.return_value = ["k", "v"]
    lua = Lua(script_dir, client)

    assert lua.run("echo", keys=["k"], argv=["v"]) == ["k", "v"]
    _, sha = lua.script("echo")
    client.evalsha.assert_called_once_with(sha, 1, "k", "v")
    client.eval.assert_not_called()


def test_unknown_fingerprint_falls_back_to_eval(script_dir):
    client = mock.Mock()
    client.evalsha.side_effect = NoScriptError("No matching script. Please use EVAL.")
    client.eval.return_value = ["k", "v"]
    lua = Lua(script_dir, client)

    assert lua.run("echo", keys=["k"], argv=["v"]) == ["k", "v"]
    body, _ = lua.script("echo")
    client.eval.assert_called_once_with(body, 1, "k", "v")


def test_plain_noscript_reply_also_falls_back(script_dir):
    client = mock.Mock()
    client.evalsha.side_effect = ResponseError("NOSCRIPT No matching script. Please use EVAL.")
    client.eval.return_value = 1
    lua = Lua(script_dir, client)

    assert lua.run("echo", keys=["k"]) == 1


def test_other_script_errors_propagate(script_dir):
    client = mock.Mock()
    client.evalsha.side_effect = ResponseError("ERR Error running script")
    lua = Lua(script_dir, client)

    with pytest.raises(ResponseError):
        lua.run("echo", keys=["k"], argv=["v"])
    client.eval.assert_not_called()


def test_bundled_scripts_exist():
    assert (LUA_DIR / "save.lua").is_file()
    assert (LUA_DIR / "delete.lua").is_file()


class Memo(Model):
    text = attribute()


def test_save_survives_a_flushed_script_cache(store):
    first = Memo.create(text="before")
    store.script_flush()

    with mock.patch.object(store, "eval", wraps=store.eval) as fallback:
        second = Memo.create(text="after")

    assert fallback.call_count == 1
    assert int(second.id) == int(first.id) + 1
    assert Memo.get(second.id).text == "after"

    # the upload re-registers the script, so the fingerprint works again
    with mock.patch.object(store, "eval", wraps=store.eval) as fallback:
        Memo.create(text="again")
    fallback.assert_not_called()


def test_runner_follows_the_calling_threads_connection(store):
    lua = Lua(LUA_DIR, redshelve.conn)
    assert lua._client() is store


class Reminder(Model):
    text = attribute()


def test_models_share_one_script_cache(monkeypatch):
    monkeypatch.setattr(redshelve.scripts, "_cache", {})
    with mock.patch.object(redshelve.scripts, "_read", wraps=redshelve.scripts._read) as read:
        memo = Memo.create(text="one")
        Reminder.create(text="two")
        Memo.create(text="three")
        memo.delete()

    assert [call.args[0] for call in read.call_args_list] == ["save", "delete"]
    assert set(redshelve.scripts._cache) == {"save", "delete"}


def test_runner_without_a_client_refuses_to_run(script_dir):
    with pytest.raises(redshelve.RedshelveError):
        Lua(script_dir).run("echo", keys=["k"])


def test_run_uses_the_client_it_is_given(script_dir):
    default = mock.Mock()
    given = mock.Mock()
    given.evalsha.return_value = 1
    lua = Lua(script_dir, default)

    assert lua.run("echo", keys=["k"], redis=given) == 1
    default.evalsha.assert_not_called()
    given.evalsha.assert_called_once()
