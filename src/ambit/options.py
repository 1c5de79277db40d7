from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class TransactionOptions:
    """Resolved settings for a single execution

    Attributes:
        read_only (bool): Begin a read-only transaction and, unless
            ``use_primary`` is set, route it to a replica
        use_primary (bool): Force the primary pool even for read-only work
    """

    read_only: bool = False
    use_primary: bool = False


@dataclass
class OptionsBuilder:
    """Mutable record that option functions write to

    Example:

    ```python
    options = OptionsBuilder().read_only().use_primary().build()
    ```
    """

    is_read_only: bool = False
    is_use_primary: bool = False

    def read_only(self, value: bool = True) -> OptionsBuilder:
        self.is_read_only = value
        return self

    def use_primary(self, value: bool = True) -> OptionsBuilder:
        self.is_use_primary = value
        return self

    def build(self) -> TransactionOptions:
        return TransactionOptions(
            read_only=self.is_read_only, use_primary=self.is_use_primary
        )


TransactionOption = Callable[[OptionsBuilder], None]


def with_read_only() -> TransactionOption:
    """Run as a read-only transaction, on a replica by default"""

    def apply(builder: OptionsBuilder) -> None:
        builder.read_only()

    return apply


def with_use_primary() -> TransactionOption:
    """Force the primary pool"""

    def apply(builder: OptionsBuilder) -> None:
        builder.use_primary()

    return apply


def resolve_options(
    *options: Optional[TransactionOption],
) -> TransactionOptions:
    """Apply option functions in order and return the resolved settings

    Later options overwrite earlier ones on the same field. ``None`` entries
    are ignored.
    """
    builder = OptionsBuilder()
    for option in options:
        if option is None:
            continue
        option(builder)
    return builder.build()
