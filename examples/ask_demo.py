"""Minimal demonstration of one ASK_LLM round trip."""

from assist_core.api.service import Sender, get_default_channel, get_default_router

if __name__ == "__main__":
    router = get_default_router()
    channel = get_default_channel()
    tab_id = 1
    channel.open(tab_id, listener=lambda event: print(event.to_message()))

    question = "please highlight Create role"
    accepted = router.handle(
        {"kind": "ASK_LLM", "payload": {"messages": [{"role": "user", "content": question}], "context": {}}},
        Sender(tab_id=tab_id, url="https://console.aws.amazon.com/iam/home"),
    )
    print("User:", question, "| accepted:", accepted)
    print("Status:", router.handle({"kind": "GET_STATUS"}, Sender()))
