import logging

import pytest
from django.contrib.messages.storage.fallback import FallbackStorage
from django.test import RequestFactory, override_settings

from entity_library.config_proxy import configure_settings, get_setting, settings_proxy
from entity_library.defaults import get_default
from entity_library.errors import ActionExecutionError, ErrorCode, describe_exception, to_error
from entity_library.notifications import ERROR, SUCCESS, DjangoMessagesNotifier, LoggingNotifier
from entity_library.table.config import get_table_settings

pytestmark = pytest.mark.unit


def test_defaults_are_used_without_configuration():
    assert get_setting("table_settings.default_page_size") == 10
    assert get_default("dependent_field_settings.option_label_key") == "name"
    assert get_default("missing.key", "fallback") == "fallback"


@override_settings(ENTITY_LIBRARY={"table_settings": {"default_page_size": 50}})
def test_django_settings_override_defaults():
    assert get_setting("table_settings.default_page_size") == 50
    assert get_table_settings().default_page_size == 50
    assert get_table_settings().max_page_size == 1000


@override_settings(ENTITY_LIBRARY={"table_settings": {"default_page_size": 50}})
def test_runtime_overrides_win_and_clear_snapshots():
    assert get_table_settings().default_page_size == 50
    configure_settings(table_settings__default_page_size=25)
    assert get_setting("table_settings.default_page_size") == 25
    assert get_table_settings().default_page_size == 25
    assert settings_proxy.section("table_settings")["max_page_buttons"] == 5


def test_to_error_payload():
    payload = to_error(ErrorCode.VALIDATION, "Name is required", field="name")
    assert payload == {
        "field": "name",
        "message": "Name is required",
        "code": "ENTITY_VALIDATION",
        "severity": "error",
        "details": {},
        "retryable": False,
    }


def test_action_execution_error_details():
    error = ActionExecutionError("Archive failed", action_id="archive", row_id=2, completed_ids=[1])
    assert error.to_error()["details"] == {
        "actionId": "archive",
        "rowId": 2,
        "completedIds": [1],
    }
    assert describe_exception(ValueError()) == "Unexpected error"


def test_logging_notifier_writes_to_library_logger(caplog):
    with caplog.at_level(logging.INFO, logger="entity_library.notifications"):
        LoggingNotifier()(SUCCESS, "Warehouse created")
        LoggingNotifier()(ERROR, "Unable to save", to_error(ErrorCode.MUTATION, "boom"))
    assert "Warehouse created" in caplog.text
    assert "ENTITY_MUTATION" in caplog.text


@override_settings(MESSAGE_STORAGE="django.contrib.messages.storage.fallback.FallbackStorage")
def test_django_messages_notifier_queues_messages():
    request = RequestFactory().get("/")
    request.session = {}
    request._messages = FallbackStorage(request)

    DjangoMessagesNotifier(request)(SUCCESS, "Warehouse created")

    assert [str(message) for message in request._messages] == ["Warehouse created"]
