"""스키마 및 해시 유틸리티 테스트"""

import pytest
from pydantic import ValidationError

from faceguard_client.controllers.state_stream import StateStream
from faceguard_client.schemas.operation_schema import CacheEntry, ContentType, Operation, QueueItem
from faceguard_client.schemas.recognition_schema import AlertLevel, PaginationInfo, extract_security_alert
from faceguard_client.utils.hash_utils import generate_cache_key, resource_prefix


class TestOperation:
    def test_read_defaults(self):
        op = Operation.read("/usuarios/", {"pagina": 1, "activo": False, "nombre": None})

        assert op.key == "usuarios/"
        assert op.http_method == "GET"
        assert op.params == {"pagina": "1", "activo": "false"}

    def test_write_defaults_to_post(self):
        assert Operation.write("usuarios/entrenar-modelo").http_method == "POST"

    def test_read_cannot_carry_payload(self):
        with pytest.raises(ValidationError):
            Operation(kind="read", key="usuarios/", payload=b"x")

    @pytest.mark.parametrize("key", ["", "   ", "/"])
    def test_blank_key(self, key):
        with pytest.raises(ValidationError):
            Operation.read(key)

    def test_unsupported_method(self):
        with pytest.raises(ValidationError):
            Operation.write("usuarios/1", method="TRACE")

    def test_bytes_survive_json(self):
        """이미지 바이트는 base64로 영속화"""
        op = Operation.write("usuarios/1/imagenes", payload=b"\x00\xff\xd8", content_type=ContentType.MULTIPART)
        item = QueueItem(id="1", operation=op, enqueued_at=1.0)

        restored = QueueItem.model_validate_json(item.model_dump_json())

        assert restored.operation.payload == b"\x00\xff\xd8"


class TestCacheEntry:
    def test_expiry_must_follow_store(self):
        with pytest.raises(ValidationError):
            CacheEntry(value=1, stored_at=10.0, expires_at=10.0)

    def test_is_valid(self):
        entry = CacheEntry(value=1, stored_at=10.0, expires_at=20.0, version="1.0")
        assert entry.is_valid(19.9, "1.0") is True
        assert entry.is_valid(20.0, "1.0") is False
        assert entry.is_valid(15.0, "2.0") is False


class TestRecognitionSchemas:
    def test_alert_at_top_level(self):
        alert = extract_security_alert({"alert": {"level": "MEDIUM", "message": "Revisar"}})
        assert alert.level == AlertLevel.MEDIUM
        assert alert.message == "Revisar"

    def test_malformed_alert_defaults_to_high(self):
        alert = extract_security_alert({"data": {"alerta_seguridad": {"alert_level": "CRITICAL", "message": "x"}}})
        assert alert.level == AlertLevel.HIGH
        assert alert.message == "x"

    def test_no_alert(self):
        assert extract_security_alert({"data": {"reconocido": False}}) is None
        assert extract_security_alert(None) is None

    def test_pagination_aliases(self):
        info = PaginationInfo.model_validate({"pagina": 2, "items_por_pagina": 20, "total_paginas": 7, "total": 130})
        assert (info.page, info.page_size, info.total_pages, info.total) == (2, 20, 7, 130)


class TestHashUtils:
    def test_cache_key_keeps_resource_prefix(self):
        key = generate_cache_key("usuarios/", {"pagina": "1"})
        assert key.startswith("usuarios/?")
        assert resource_prefix(key) == "usuarios"

    def test_cache_key_ignores_param_order(self):
        assert generate_cache_key("k", {"a": "1", "b": "2"}) == generate_cache_key("k", {"b": "2", "a": "1"})

    def test_resource_prefix(self):
        assert resource_prefix("usuarios/12/imagenes") == "usuarios"
        assert resource_prefix("/reconocimiento/estadisticas") == "reconocimiento"


class TestStateStream:
    def test_subscribe_emits_current_value(self):
        stream = StateStream(1)
        seen = []

        unsubscribe = stream.subscribe(seen.append)
        stream.emit(2)
        unsubscribe()
        stream.emit(3)

        assert seen == [1, 2]
        assert stream.value == 3

    def test_failing_listener_does_not_block_others(self):
        stream = StateStream("idle")
        seen = []

        def broken(_value):
            raise RuntimeError("render failed")

        stream.subscribe(broken)
        stream.subscribe(seen.append)
        stream.emit("capturing")

        assert seen == ["idle", "capturing"]
