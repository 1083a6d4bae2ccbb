import json

from typer.testing import CliRunner

runner = CliRunner()


def test_encode_prints_envelope():
    from client.chat_cli import app

    result = runner.invoke(app, ["encode", "room-x", "7", "  hi  "])

    assert result.exit_code == 0
    envelope = json.loads(result.stdout)
    assert envelope["message"] == "hi"
    assert envelope["sender"] == 7
    assert envelope["room_address"] == "room-x"
    assert envelope["type"] == "TEXT"


def test_check_classifies_notification():
    from client.chat_cli import app

    result = runner.invoke(app, ["check", json.dumps({"user": 42, "event": "CONNECTED"})])

    assert result.exit_code == 0
    report = json.loads(result.stdout)
    assert report["type"] == "USER_EVENT"
    assert report["is_valid"] is True


def test_check_unknown_and_malformed_exit_nonzero():
    from client.chat_cli import app

    assert runner.invoke(app, ["check", json.dumps({"foo": 1})]).exit_code == 1
    assert runner.invoke(app, ["check", "{nope"]).exit_code == 1


def test_render_message_lines():
    from client.chat_cli import render_message
    from shared.envelope import decode

    joined = render_message(decode(json.dumps({"user": 5, "event": "CONNECTED"})))
    left = render_message(decode(json.dumps({"user": 5, "event": "DISCONNECTED"})))
    text = render_message(decode(json.dumps({
        "message": "hello",
        "sender": 5,
        "timestamp": "bad timestamp",
        "room_address": "r1",
        "type": "TEXT",
    })))

    assert "joined" in joined
    assert "left" in left
    assert "hello" in text and "bad timestamp" in text


def test_render_message_shows_markup_literally():
    from rich.console import Console

    from client.chat_cli import render_message
    from shared.envelope import decode

    line = render_message(decode(json.dumps({
        "message": "see [/] here and [bold]there",
        "sender": 5,
        "timestamp": "2024-06-15T12:00:00.000Z",
        "room_address": "r1",
        "type": "TEXT",
    })))
    unknown = render_message(decode(json.dumps({"note": "[blink red]"})))

    console = Console(record=True, width=200)
    console.print(line)
    console.print(unknown)
    output = console.export_text()

    assert "see [/] here and [bold]there" in output
    assert "[blink red]" in output


def test_check_rejects_oversized_json():
    from client.chat_cli import app

    result = runner.invoke(app, ["check", "[" * 100000 + "]" * 100000])

    assert result.exit_code == 1
    assert "Malformed payload" in result.stdout
