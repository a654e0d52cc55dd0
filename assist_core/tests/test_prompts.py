from assist_core.prompts import build_system_prompt, detect_mode


def test_detect_mode():
    assert detect_mode("https://us-east-1.console.aws.amazon.com/iam/home") == "aws"
    assert detect_mode("https://console.amazonaws.cn/ec2") == "aws"
    assert detect_mode("https://www.google.com/search?q=x") == "google"
    assert detect_mode("https://example.com/") == "generic"
    assert detect_mode("") == "generic"
    assert detect_mode("not a url") == "generic"


def test_every_prompt_describes_the_highlight_block():
    for url in ("https://console.aws.amazon.com", "https://google.de", "https://example.com"):
        prompt = build_system_prompt(url)
        assert '{"action":"highlight","targets":[' in prompt


def test_google_prompt():
    assert build_system_prompt("https://www.google.com").startswith("You are a Google Search assistant.")
