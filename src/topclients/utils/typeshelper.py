class StatHints:
    total = "total"
    dropped = "dropped"
    forwarded = "forwarded"
    keys = "keys"


class ExtensionHelperTC:
    partial_counts = ".counts.json"
    partial_top = ".top.json"
    snapshot = ".json"
