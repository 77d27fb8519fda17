import random
import sys
from pathlib import Path

from chat_store.engine import Storage
from chat_store.session import ChatSession

TOPICS = ["weather", "deploy plan", "grocery list", "bug triage", "weekend trip"]


def generate_store(out_dir, conversations=3, turns=3, seed=None):
    """Write a demo store with simulated conversations. Returns the store path."""
    rng = random.Random(seed)
    storage = Storage(Path(out_dir))
    storage.initialize()

    for _ in range(conversations):
        session = ChatSession(storage)
        topic = rng.choice(TOPICS)
        for turn in range(turns):
            session.ask(f"{topic} question {turn + 1}")
            # Re-save after every turn: first save allocates, the rest overwrite.
            session.save()
        session.pump_notifications()
        print(f"GENERATED: conversation {session.current_id} ({topic})")

    storage.close()
    return storage.path


if __name__ == "__main__":
    # Usage:
    #   python tools/sim_chat.py OUT_DIR [--conversations N] [--turns N]

    args = [a for a in sys.argv[1:] if a]

    def pop_int(arg_list: list[str], flag: str, default: int) -> tuple[int, list[str]]:
        """Remove an integer option from an argv-style list."""
        if flag not in arg_list:
            return default, arg_list
        i = arg_list.index(flag)
        if i + 1 >= len(arg_list):
            raise SystemExit(f"{flag} requires a value")
        return int(arg_list[i + 1]), arg_list[:i] + arg_list[i + 2:]

    conversations, args = pop_int(args, "--conversations", 3)
    turns, args = pop_int(args, "--turns", 3)

    out = args[0] if len(args) > 0 else "chat"
    path = generate_store(out, conversations=conversations, turns=turns)
    print(f"STORE: {path}")
