"""Exceptions raised while synthesizing predicates."""


class SynthesisError(Exception):
    """Base class for synthesis failures."""


class EmptyCollection(SynthesisError):
    """The profiled collection holds no entities."""

    def __init__(self, collection):
        super().__init__(f"Collection '{collection}' is empty; cannot profile it")
        self.collection = collection


class NoApplicableStrategy(SynthesisError):
    """Every strategy declined to propose a candidate for one attempt."""

    def __init__(self, target_count, tried=()):
        names = ", ".join(tried) if tried else "none"
        super().__init__(f"No strategy applicable for target {target_count} (tried: {names})")
        self.target_count = target_count
        self.tried = tuple(tried)
