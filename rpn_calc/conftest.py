import pytest

from rpn_calc.main import Session


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def scripted():
    """Build a line source that replays the given lines, then signals end of input."""
    def make(*lines):
        remaining = iter(lines)

        def read_line():
            try:
                return next(remaining)
            except StopIteration:
                raise EOFError()
        return read_line
    return make


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    outcome = yield
    report = outcome.get_result()
    if report.when == "call":
        print(f"TEST: {item.name} - {'PASSED' if report.passed else 'FAILED'}")
