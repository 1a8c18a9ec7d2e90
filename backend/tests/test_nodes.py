"""Tests for the built-in node handlers."""

import pytest
import requests

from chainflow.engine.errors import ConfigurationError
from chainflow.engine.nodes.base import render_template
from chainflow.engine.nodes.basic_nodes import (
    ConditionNodeHandler,
    DelayNodeHandler,
    LogNodeHandler,
    MergeNodeHandler,
    evaluate_expression,
)
from chainflow.engine.nodes.blockchain_nodes import (
    PythPriceNodeHandler,
    SolanaRpcNodeHandler,
    WalletBalanceNodeHandler,
    is_valid_address,
)
from chainflow.engine.nodes.http_nodes import HttpRequestNodeHandler, WebhookNodeHandler
from chainflow.engine.nodes.notification_nodes import EmailNodeHandler, TelegramNodeHandler
from chainflow.engine.nodes.postgres_node import PostgresDbNodeHandler
from chainflow.engine.registry import build_default_registry
from tests.fakes import FakeConnections, FakeResponse

WALLET = "So11111111111111111111111111111111111111112"


@pytest.fixture
def context(make_context):
    return make_context(current_node_id="node")


class TestRegistry:
    def test_default_registry_covers_every_node_type(self):
        assert build_default_registry().available_types() == sorted(
            [
                "ai",
                "condition",
                "delay",
                "email",
                "http_request",
                "log",
                "merge",
                "postgres_db",
                "pyth_price",
                "solana_rpc",
                "telegram",
                "wallet_balance",
                "webhook",
            ]
        )

    def test_duplicate_registration_is_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register(LogNodeHandler())


class TestTemplates:
    def test_nested_placeholders(self):
        assert render_template("SOL is {{input.price.usd}}", {"price": {"usd": 101}}) == "SOL is 101"

    def test_unknown_placeholder_is_left_alone(self):
        assert render_template("{{input.missing}}", {"price": 1}) == "{{input.missing}}"

    def test_non_mapping_input(self):
        assert render_template("{{input.x}}", [1, 2]) == "{{input.x}}"


class TestCondition:
    def test_true_result_keeps_input(self, context):
        result = ConditionNodeHandler().execute({"expression": "input['price'] > 100"}, {"price": 101}, context)
        assert result == {"price": 101, "passed": True, "expression": "input['price'] > 100"}

    def test_attribute_access_and_lowercase_literals(self):
        assert evaluate_expression("input.ok == true and input.count >= 2", {"ok": True, "count": 2}) is True

    def test_false_result(self, context):
        result = ConditionNodeHandler().execute({"expression": "input['price'] > 100"}, {"price": 99}, context)
        assert result["passed"] is False

    def test_evaluation_error_raises(self, context):
        with pytest.raises(ConfigurationError):
            ConditionNodeHandler().execute({"expression": "input['missing'] > 1"}, {}, context)

    def test_imports_are_not_allowed(self, context):
        with pytest.raises(ConfigurationError):
            ConditionNodeHandler().execute({"expression": "__import__('os')"}, {}, context)

    @pytest.mark.parametrize("expression", ["unknown_name > 1", "input[", "1 / 0"])
    def test_any_evaluation_failure_is_a_configuration_error(self, context, expression):
        with pytest.raises(ConfigurationError, match="Condition evaluation failed"):
            ConditionNodeHandler().execute({"expression": expression}, {"price": 1}, context)


class TestUtilityNodes:
    def test_delay_sleeps_and_passes_input(self, context, monkeypatch):
        slept = []
        monkeypatch.setattr("chainflow.engine.nodes.basic_nodes.time.sleep", slept.append)

        result = DelayNodeHandler().execute({"seconds": 2}, {"a": 1}, context)

        assert slept == [2.0]
        assert result["delayed"] is True
        assert result["input"] == {"a": 1}

    def test_delay_rejects_negative(self, context):
        with pytest.raises(ConfigurationError):
            DelayNodeHandler().execute({"seconds": -1}, {}, context)

    def test_log_defaults_message(self, context):
        result = LogNodeHandler().execute({}, {"a": 1}, context)
        assert result["logged"] is True
        assert result["message"] == "Log"

    def test_merge_all_outputs(self, make_context):
        context = make_context(node_outputs={"a": {"x": 1}, "b": {"x": 2, "y": 3}, "c": "text"})

        result = MergeNodeHandler().execute({}, None, context)

        assert result["x"] == 2
        assert result["y"] == 3
        assert result["_bySource"]["c"] == "text"
        assert result["_metadata"]["sources"] == ["a", "b", "c"]

    def test_merge_sources_must_be_a_list(self, context):
        with pytest.raises(ConfigurationError):
            MergeNodeHandler().execute({"sources": "a"}, None, context)


class TestHttpRequest:
    def test_json_body_and_response(self, context, monkeypatch):
        captured = {}

        def fake_request(method, url, **kwargs):
            captured.update(method=method, url=url, **kwargs)
            return FakeResponse(201, {"id": 7})

        monkeypatch.setattr("chainflow.engine.nodes.http_nodes.requests.request", fake_request)

        result = HttpRequestNodeHandler().execute(
            {"url": "https://api.example/items", "method": "post", "body": {"name": "x"}, "timeout": 2000},
            None,
            context,
        )

        assert result["status"] == 201
        assert result["data"] == {"id": 7}
        assert captured["method"] == "POST"
        assert captured["json"] == {"name": "x"}
        assert captured["timeout"] == 2.0
        assert captured["headers"]["content-type"] == "application/json"

    def test_transport_error_is_soft(self, context, monkeypatch):
        def fake_request(method, url, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr("chainflow.engine.nodes.http_nodes.requests.request", fake_request)

        result = HttpRequestNodeHandler().execute({"url": "https://down.example"}, None, context)
        assert result == {"status": "error", "error": "refused"}

    def test_url_is_required(self, context):
        with pytest.raises(ConfigurationError):
            HttpRequestNodeHandler().execute({}, None, context)


class TestWebhook:
    def test_invalid_url_raises(self, context):
        with pytest.raises(ConfigurationError, match="Invalid URL"):
            WebhookNodeHandler().execute({"url": "ftp://example"}, {}, context)

    def test_invalid_method_raises(self, context):
        with pytest.raises(ConfigurationError):
            WebhookNodeHandler().execute({"url": "https://hooks.example", "method": "GET"}, {}, context)

    def test_delivery_includes_input_and_metadata(self, context, monkeypatch):
        sent = []

        def fake_request(method, url, json=None, headers=None, timeout=None):
            sent.append(json)
            return FakeResponse(200, {"received": True})

        monkeypatch.setattr("chainflow.engine.nodes.http_nodes.requests.request", fake_request)

        result = WebhookNodeHandler().execute(
            {"url": "https://hooks.example", "payload": {"alert": "high"}}, {"price": 101}, context
        )

        assert result["success"] is True
        assert result["attempts"] == 1
        assert sent[0]["alert"] == "high"
        assert sent[0]["input"] == {"price": 101}
        assert sent[0]["metadata"]["runId"] == "run-1"

    def test_retries_with_backoff_then_soft_fails(self, context, monkeypatch):
        waits = []

        def fake_request(method, url, **kwargs):
            raise requests.Timeout()

        monkeypatch.setattr("chainflow.engine.nodes.http_nodes.requests.request", fake_request)
        monkeypatch.setattr("chainflow.engine.nodes.http_nodes.time.sleep", waits.append)

        result = WebhookNodeHandler().execute(
            {"url": "https://hooks.example", "retries": 2, "timeout": 100}, {}, context
        )

        assert result["success"] is False
        assert result["error"] == "Webhook request timed out after 100ms"
        assert waits == [1, 2]

    def test_non_2xx_is_retried(self, context, monkeypatch):
        responses = [FakeResponse(500, text="oops"), FakeResponse(200, {"ok": True})]
        monkeypatch.setattr(
            "chainflow.engine.nodes.http_nodes.requests.request", lambda *args, **kwargs: responses.pop(0)
        )
        monkeypatch.setattr("chainflow.engine.nodes.http_nodes.time.sleep", lambda seconds: None)

        result = WebhookNodeHandler().execute({"url": "https://hooks.example", "retries": 1}, {}, context)

        assert result["success"] is True
        assert result["attempts"] == 2


class TestBlockchain:
    def test_address_shape(self):
        assert is_valid_address(WALLET)
        assert not is_valid_address("0xdeadbeef")
        assert not is_valid_address("O" * 40)

    def test_wallet_balance(self, context, monkeypatch):
        calls = []

        def fake_post(url, json=None, timeout=None):
            calls.append((url, json))
            return FakeResponse(200, {"jsonrpc": "2.0", "id": 1, "result": {"context": {}, "value": 2_500_000_000}})

        monkeypatch.setattr("chainflow.engine.nodes.blockchain_nodes.requests.post", fake_post)

        result = WalletBalanceNodeHandler().execute({"walletAddress": WALLET, "network": "devnet"}, None, context)

        assert result["balance"] == 2.5
        assert result["lamports"] == 2_500_000_000
        assert calls[0][0] == "https://api.devnet.solana.com"
        assert calls[0][1]["method"] == "getBalance"

    def test_wallet_balance_invalid_address_raises(self, context):
        with pytest.raises(ConfigurationError):
            WalletBalanceNodeHandler().execute({"walletAddress": "not-a-wallet"}, None, context)

    def test_wallet_balance_rpc_error_is_soft(self, context, monkeypatch):
        monkeypatch.setattr(
            "chainflow.engine.nodes.blockchain_nodes.requests.post",
            lambda *args, **kwargs: FakeResponse(200, {"error": {"code": -32000, "message": "node is behind"}}),
        )

        result = WalletBalanceNodeHandler().execute({"walletAddress": WALLET}, None, context)

        assert result["balance"] == 0
        assert "node is behind" in result["error"]

    def test_price(self, context, monkeypatch):
        captured = {}

        def fake_get(url, params=None, timeout=None):
            captured.update(params)
            return FakeResponse(200, {"bitcoin": {"usd": 64123.5}})

        monkeypatch.setattr("chainflow.engine.nodes.blockchain_nodes.requests.get", fake_get)

        result = PythPriceNodeHandler().execute({"symbol": "Crypto.BTC/USD"}, None, context)

        assert captured["ids"] == "bitcoin"
        assert result["price"] == 64123.5
        assert result["symbol"] == "BITCOIN"

    def test_price_failure_is_soft(self, context, monkeypatch):
        monkeypatch.setattr(
            "chainflow.engine.nodes.blockchain_nodes.requests.get", lambda *args, **kwargs: FakeResponse(200, {})
        )

        result = PythPriceNodeHandler().execute({}, None, context)

        assert result["coinId"] == "solana"
        assert result["price"] == 0
        assert "not found" in result["error"]

    def test_solana_rpc_account_info(self, make_context, monkeypatch):
        context = make_context(rpc_url="https://rpc.example")
        monkeypatch.setattr(
            "chainflow.engine.nodes.blockchain_nodes.requests.post",
            lambda *args, **kwargs: FakeResponse(
                200, {"result": {"value": {"owner": "11111111111111111111111111111111", "lamports": 5, "executable": False}}}
            ),
        )

        result = SolanaRpcNodeHandler().execute({"action": "getAccountInfo", "address": WALLET}, None, context)

        assert result["success"] is True
        assert result["data"] == {"owner": "11111111111111111111111111111111", "lamports": 5, "executable": False}

    def test_solana_rpc_unknown_action_is_soft(self, make_context):
        context = make_context(rpc_url="https://rpc.example")

        result = SolanaRpcNodeHandler().execute({"action": "sendTransaction"}, None, context)

        assert result["success"] is False
        assert "Unknown action" in result["error"]


class TestTelegram:
    def test_sends_rendered_message(self, make_context, credential_service, monkeypatch):
        credential = credential_service.create_credential("alice", "bot", "telegram", {"token": "T0K", "chatId": "42"})
        context = make_context(credentials=credential_service)
        posted = {}

        def fake_post(url, json=None, timeout=None):
            posted.update(url=url, body=json)
            return FakeResponse(200, {"ok": True})

        monkeypatch.setattr("chainflow.engine.nodes.notification_nodes.requests.post", fake_post)

        result = TelegramNodeHandler().execute(
            {"credentialId": credential.id, "message": "SOL at {{input.price}}"}, {"price": 101}, context
        )

        assert result["sent"] is True
        assert result["text"] == "SOL at 101"
        assert posted["url"].endswith("/botT0K/sendMessage")
        assert posted["body"] == {"chat_id": "42", "text": "SOL at 101", "parse_mode": "HTML"}

    def test_foreign_credential_is_soft_failure(self, make_context, credential_service):
        credential = credential_service.create_credential("bob", "bot", "telegram", {"token": "T", "chatId": "1"})
        context = make_context(credentials=credential_service)

        result = TelegramNodeHandler().execute({"credentialId": credential.id, "message": "hi"}, {}, context)

        assert result["sent"] is False
        assert "access denied" in result["error"]

    def test_api_error_is_soft_failure(self, make_context, credential_service, monkeypatch):
        credential = credential_service.create_credential("alice", "bot", "telegram", {"token": "T", "chatId": "1"})
        context = make_context(credentials=credential_service)
        monkeypatch.setattr(
            "chainflow.engine.nodes.notification_nodes.requests.post",
            lambda *args, **kwargs: FakeResponse(400, {"ok": False, "error_code": 400, "description": "chat not found"}),
        )

        result = TelegramNodeHandler().execute({"credentialId": credential.id, "message": "hi"}, {}, context)

        assert result["sent"] is False
        assert "chat not found" in result["error"]


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port = host, port
        self.started_tls = False
        self.logged_in = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, message, from_addr=None, to_addrs=None):
        self.messages.append((message, from_addr, to_addrs))


class TestEmail:
    def test_sends_over_starttls(self, make_context, credential_service, monkeypatch):
        FakeSMTP.instances = []
        monkeypatch.setattr("chainflow.engine.nodes.notification_nodes.smtplib.SMTP", FakeSMTP)
        credential = credential_service.create_credential(
            "alice",
            "mail",
            "email",
            {"host": "smtp.example", "port": 587, "user": "bot@example", "pass": "pw", "secure": False},
        )
        context = make_context(credentials=credential_service)

        result = EmailNodeHandler().execute(
            {
                "credentialId": credential.id,
                "to": "a@example, b@example",
                "subject": "Price {{input.price}}",
                "body": "SOL is {{input.price}}",
            },
            {"price": 101},
            context,
        )

        assert result["sent"] is True
        assert result["to"] == ["a@example", "b@example"]
        assert result["subject"] == "Price 101"
        smtp = FakeSMTP.instances[0]
        assert (smtp.host, smtp.port) == ("smtp.example", 587)
        assert smtp.started_tls
        assert smtp.logged_in == ("bot@example", "pw")
        message, sender, recipients = smtp.messages[0]
        assert message["Subject"] == "Price 101"
        assert sender == "bot@example"
        assert recipients == ["a@example", "b@example"]

    def test_incomplete_credential_is_soft_failure(self, make_context, credential_service):
        credential = credential_service.create_credential("alice", "mail", "email", {"host": "smtp.example"})
        context = make_context(credentials=credential_service)

        result = EmailNodeHandler().execute(
            {"credentialId": credential.id, "to": "a@example", "subject": "s", "body": "b"}, {}, context
        )

        assert result["sent"] is False
        assert "port" in result["error"]


class TestPostgresNode:
    def test_invalid_mode(self, context):
        result = PostgresDbNodeHandler().execute({"mode": "ADMIN", "action": "query"}, None, context)
        assert result == {"status": "error", "error": "Invalid mode: ADMIN"}

    def test_query_in_write_mode_is_rejected(self, make_context, engine):
        context = make_context(connections=FakeConnections(engine))

        result = PostgresDbNodeHandler().execute(
            {"mode": "WRITE", "action": "query", "credentialId": "c1", "query": "SELECT 1"}, None, context
        )

        assert result["status"] == "error"
        assert "WRITE-only" in result["error"]

    def test_query_returns_rows(self, make_context, make_flow, engine):
        make_flow(name="Alpha")
        connections = FakeConnections(engine)
        context = make_context(connections=connections)

        result = PostgresDbNodeHandler().execute(
            {
                "mode": "READ",
                "action": "query",
                "credentialId": "c1",
                "query": "SELECT name FROM flows WHERE user_id = $1",
                "queryParams": ["alice"],
            },
            None,
            context,
        )

        assert result == {"status": "success", "rows": [{"name": "Alpha"}], "count": 1}
        assert connections.requests == [("c1", "alice")]

    def test_write_in_read_mode_is_rejected(self, make_context, engine):
        context = make_context(connections=FakeConnections(engine))

        result = PostgresDbNodeHandler().execute(
            {"mode": "READ", "action": "write", "credentialId": "c1", "table": "flows", "operation": "DELETE"},
            None,
            context,
        )

        assert "READ-only" in result["error"]
