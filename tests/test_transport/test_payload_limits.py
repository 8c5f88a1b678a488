from screen_pilot.llm import (
    ImageContent,
    TextContent,
    UserMessage,
    assistant_text,
    count_images,
    user_text,
)
from screen_pilot.transport import (
    content_item_size,
    limit_by_image_count,
    limit_by_item_count,
    limit_by_total_size,
    limit_messages,
    model_family,
)


def _screen(step: int, images: int = 1) -> UserMessage:
    items: list = [TextContent(text=f"step {step}")]
    items.extend(ImageContent.from_url(f"https://shots/{step}-{i}.png") for i in range(images))
    return UserMessage(content=tuple(items))


def _image_urls(messages) -> list[str]:
    return [item.image for message in messages for item in message.content if item.type == "image"]


def test_model_family_dispatch():
    assert model_family("claude-sonnet-4") == "count_bounded"
    assert model_family("anthropic/claude-3-7") == "count_bounded"
    assert model_family("gpt-4.1") == "count_bounded"
    assert model_family("o3-mini") == "count_bounded"
    assert model_family("gemini-2.5-pro") == "byte_bounded"
    assert model_family("qwen-vl-max") is None


def test_count_bounded_keeps_newest_images_within_cap():
    messages = [_screen(step) for step in range(1, 101)]

    limited = limit_by_image_count(messages, 95)

    assert sum(count_images(m) for m in limited) == 95
    assert _image_urls(limited)[0] == "https://shots/6-0.png"
    assert _image_urls(limited)[-1] == "https://shots/100-0.png"


def test_count_bounded_partial_message_keeps_text_and_newest_images():
    messages = [_screen(1, images=3), _screen(2, images=2)]

    limited = limit_by_image_count(messages, 3)

    assert len(limited) == 2
    partial = limited[0]
    assert partial.content[0] == TextContent(text="step 1")
    assert _image_urls([partial]) == ["https://shots/1-2.png"]
    assert _image_urls(limited[1:]) == ["https://shots/2-0.png", "https://shots/2-1.png"]


def test_count_bounded_stops_after_truncated_message():
    messages = [_screen(1), _screen(2, images=3), _screen(3)]

    limited = limit_by_image_count(messages, 2)

    assert len(limited) == 2
    assert _image_urls(limited) == ["https://shots/2-2.png", "https://shots/3-0.png"]


def test_count_bounded_passes_assistant_messages_through():
    messages = [_screen(1), assistant_text("clicking"), _screen(2)]

    limited = limit_by_image_count(messages, 95)

    assert limited == messages


def test_byte_bounded_drops_text_item_larger_than_budget():
    messages = [user_text("x" * 200)]

    assert limit_by_total_size(messages, max_bytes=100, url_estimate=10) == []


def test_byte_bounded_prefers_text_over_images():
    big_image = ImageContent.from_base64("A" * 400)
    message = UserMessage(content=(big_image, TextContent(text="hello")))

    limited = limit_by_total_size([message], max_bytes=100, url_estimate=10)

    assert len(limited) == 1
    assert limited[0].content == (TextContent(text="hello"),)


def test_byte_bounded_total_stays_within_budget():
    messages = [_screen(step) for step in range(1, 30)]

    limited = limit_by_total_size(messages, max_bytes=5_000, url_estimate=1_000)

    total = sum(content_item_size(item, 1_000) for m in limited for item in m.content)
    assert total <= 5_000
    assert _image_urls(limited)[-1] == "https://shots/29-0.png"


def test_base64_image_size_is_decoded_size():
    assert content_item_size(ImageContent.from_base64("A" * 400)) == 300
    assert content_item_size(ImageContent.from_url("https://x/y.png"), url_estimate=1234) == 1234


def test_item_cap_keeps_most_recent_items():
    messages = [_screen(1, images=2), _screen(2, images=2)]

    limited = limit_by_item_count(messages, 4)

    assert len(limited) == 2
    assert _image_urls(limited) == ["https://shots/1-1.png", "https://shots/2-0.png", "https://shots/2-1.png"]


def test_unknown_family_is_not_limited():
    messages = [_screen(step) for step in range(1, 200)]

    assert limit_messages(messages, "local-llava") == messages
