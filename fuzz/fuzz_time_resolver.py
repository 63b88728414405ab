import sys
from datetime import datetime

import atheris

with atheris.instrument_imports():
    from bookwatch.dashboard.time_resolver import ResolutionError, TimeResolver
    from bookwatch.datetime_utils import coerce_timestamp, parse_civil_date, parse_clock_time

_RESOLVER = TimeResolver(clock=lambda: datetime(2024, 6, 1, 8, 0).astimezone())


def TestOneInput(data: bytes) -> None:
    """Fuzz booking date/time resolution with arbitrary input."""
    fdp = atheris.FuzzedDataProvider(data)
    date_text = fdp.ConsumeUnicodeNoSurrogates(32)
    time_text = fdp.ConsumeUnicodeNoSurrogates(16)

    # Parsers return None for invalid input and must never raise
    parse_clock_time(time_text)
    parse_civil_date(date_text)
    coerce_timestamp(date_text)
    coerce_timestamp({"seconds": fdp.ConsumeInt(8), "nanoseconds": fdp.ConsumeInt(4)})

    try:
        _RESOLVER.resolve(date_text, time_text)
    except ResolutionError:
        pass  # Expected for invalid input

    _RESOLVER.try_resolve(date_text, None)


def main() -> None:
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
