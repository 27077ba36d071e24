import pytest

from rcsx.messages import validator as validator_module
from rcsx.messages.models import FormatTag
from rcsx.messages.validator import (
    MessageValidator,
    categorize_error,
    humanize_error,
    present_errors,
)


@pytest.fixture
def validator() -> MessageValidator:
    return MessageValidator()


def test_single_text_is_valid_without_explicit_ids(validator: MessageValidator) -> None:
    result = validator.validate({"text": "hi"})

    assert result.valid is True
    assert result.errors == []
    assert result.format is FormatTag.SINGLE
    assert result.has_explicit_ids is False


def test_array_of_text_messages(validator: MessageValidator) -> None:
    result = validator.validate({"messages": [{"text": "a"}, {"text": "b"}]})

    assert result.valid is True
    assert result.format is FormatTag.ARRAY


def test_suggestion_without_postback_is_a_format_error(validator: MessageValidator) -> None:
    result = validator.validate({"text": "go", "suggestions": [{"action": {"text": "Yes"}}]})

    assert result.valid is False
    assert result.errors == ["Message suggestion 1: Action must have postbackData field"]
    [presented] = present_errors(result)
    assert presented.type == "format"
    assert presented.message == "Message suggestion 1: Button actions need postback data for processing"
    assert presented.technical == result.errors[0]


def test_empty_messages_array(validator: MessageValidator) -> None:
    result = validator.validate({"messages": []})

    assert result.valid is False
    assert result.errors == ["Messages array cannot be empty"]
    assert result.format is FormatTag.ARRAY
    assert categorize_error(result.errors[0]) == "structure"


def test_messages_must_be_an_array(validator: MessageValidator) -> None:
    result = validator.validate({"messages": {"text": "a"}})

    assert result.errors == ["Messages field must be an array"]


def test_array_errors_are_labelled_by_position(validator: MessageValidator) -> None:
    result = validator.validate({"messages": [{"text": "ok"}, {"text": ""}, {"foo": 1}]})

    assert result.errors == [
        "Message 2: Text field must be a non-empty string",
        "Message 3: Must have text, richCard, or type field",
    ]


def test_errors_accumulate_within_one_message(validator: MessageValidator) -> None:
    result = validator.validate(
        {"text": "pick", "suggestions": [{"action": {}}, "nope", {"foo": 1}]},
    )

    assert result.errors == [
        "Message suggestion 1: Action must have text field",
        "Message suggestion 1: Action must have postbackData field",
        "Message suggestion 2: Suggestion must be a JSON object",
        "Message suggestion 3: Must have action field",
    ]


def test_legacy_suggestion_shapes_are_accepted(validator: MessageValidator) -> None:
    assert validator.validate({"text": "x", "suggestedActions": [{"text": "Yes", "postbackData": "yes"}]}).valid
    assert validator.validate({"text": "x", "suggestions": [{"label": "Go", "action": "go"}]}).valid


def test_typed_messages(validator: MessageValidator) -> None:
    invalid_type = validator.validate({"type": "video"})
    assert invalid_type.errors == ['Message: Invalid type "video" - must be: text, richCard, media']
    assert categorize_error(invalid_type.errors[0]) == "format"

    missing_text = validator.validate({"type": "text"})
    assert missing_text.errors == ["Message: Text type messages must have text field"]

    assert validator.validate({"type": "richCard", "title": "Card"}).valid


def test_rich_card_shapes(validator: MessageValidator) -> None:
    bad_structure = validator.validate({"richCard": {"foo": 1}})
    assert bad_structure.errors == ["Message: Rich card must have standaloneCard structure"]

    no_title = validator.validate({"richCard": {"standaloneCard": {"cardContent": {"description": "d"}}}})
    assert no_title.errors == ["Message: Card must have a title string"]

    no_content = validator.validate({"richCard": {"standaloneCard": {}}})
    assert no_content.errors == ["Message: Standalone card must have cardContent"]

    valid = validator.validate(
        {
            "richCard": {
                "standaloneCard": {
                    "cardContent": {
                        "title": "Sale",
                        "suggestions": [{"action": {"text": "Buy", "postbackData": "buy"}}],
                    }
                }
            }
        }
    )
    assert valid.valid


def test_carousel_shapes(validator: MessageValidator) -> None:
    empty = validator.validate({"richCard": {"carouselCard": {"cardContents": []}}})
    assert empty.errors == ["Message: Carousel card must have a non-empty cardContents array"]

    untitled = validator.validate({"carousel": {"cards": [{"title": "A"}, {"description": "no title"}]}})
    assert untitled.errors == ["Message card 2: Card must have a title string"]


def test_media_checks(validator: MessageValidator) -> None:
    assert validator.validate({"media": {"mediaType": "image/png", "fileUrl": "https://example.com/p.png"}}).valid

    result = validator.validate({"media": {"mediaType": "audio", "sizeBytes": -1}})
    assert result.errors == [
        "Message: Media must have a url string",
        'Message: Invalid mediaType "audio" - must be: image, video, document',
        "Message: Media sizeBytes must be a non-negative integer",
    ]


def test_identity_fields(validator: MessageValidator) -> None:
    result = validator.validate({"text": "hi", "messageId": 5, "participantId": "12345"})

    assert result.has_explicit_ids is True
    assert result.errors == [
        "messageId must be a string",
        "Invalid participantId format: 12345. Should be MSISDN format (e.g., +15551234567)",
    ]
    assert categorize_error(result.errors[1]) == "value"


def test_structural_errors(validator: MessageValidator) -> None:
    assert validator.validate([{"text": "hi"}]).errors == [
        "Root level cannot be an array - use {messages: [...]} format"
    ]
    assert validator.validate("hi").errors == ["Message must be a valid JSON object"]

    unknown = validator.validate({"foo": 1})
    assert unknown.format is None
    assert unknown.valid is False


def test_validate_never_raises(validator: MessageValidator, monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(message: object) -> None:
        raise RuntimeError("boom")

    monkeypatch.setattr(validator_module, "classify_message", _boom)

    result = validator.validate({"text": "hi"})

    assert result.valid is False
    assert result.errors == ["Validation error: boom"]


def test_humanize_keeps_prefix_and_passes_unknown_errors_through() -> None:
    assert humanize_error("Message 2: Text field must be a non-empty string") == (
        "Message 2: Text messages need some text to show"
    )
    assert humanize_error("Messages array cannot be empty") == "You need to include at least one message"
    assert humanize_error("Something odd") == "Something odd"
    assert categorize_error("Something odd") == "general"


def test_present_errors_is_empty_for_valid_results(validator: MessageValidator) -> None:
    assert present_errors(validator.validate({"text": "hi"})) == []
