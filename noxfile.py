import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13"]

# psycopg2 ships a compiled extension; a cached wheel may target another interpreter.
_C_EXT_PACKAGES = ["psycopg2-binary"]

DOMAIN_TESTS = ["tests/delivery/domain/", "tests/delivery/bdd/"]
SERVICE_TESTS = ["tests/delivery/application/", "tests/delivery/integration/"]


def _install(session: nox.Session) -> None:
    """Install the delivery service and its test group into the session."""
    session.run("poetry", "install", "--with", "test", "--all-extras", external=True)
    session.run("pip", "install", "--force-reinstall", "--no-cache-dir", *_C_EXT_PACKAGES)


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run every delivery test on each supported Python."""
    _install(session)
    session.run("pytest", *session.posargs)


@nox.session(python=PYTHON_VERSIONS)
def tests_domain(session: nox.Session) -> None:
    """Aggregate, lifecycle, provider normalizer and BDD tests."""
    _install(session)
    session.run("pytest", *DOMAIN_TESTS, *session.posargs)


@nox.session(python=PYTHON_VERSIONS)
def tests_api(session: nox.Session) -> None:
    """Command handlers, dispatcher, webhooks, projections and HTTP routes."""
    _install(session)
    session.run("pytest", *SERVICE_TESTS, *session.posargs)


@nox.session(python=PYTHON_VERSIONS[-1])
def tests_providers(session: nox.Session) -> None:
    """Provider adapters only, against mocked HTTP transports."""
    _install(session)
    session.run("pytest", "-k", "provider", *DOMAIN_TESTS, *session.posargs)
