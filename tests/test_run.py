import os
from unittest.mock import patch

import run


def test_main_reads_api_key_from_dotenv(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr("sys.argv", ["run.py"])

    def fake_load_dotenv(*args, **kwargs):
        os.environ["OPENAI_API_KEY"] = "sk-from-dotenv"
        return True

    try:
        with patch.object(run.dotenv, "load_dotenv", side_effect=fake_load_dotenv), \
                patch.object(run.uvicorn, "run") as mock_run:
            run.main()
    finally:
        os.environ.pop("OPENAI_API_KEY", None)

    mock_run.assert_called_once()
    assert mock_run.call_args.args[0] == "voice_gateway.main:app"
