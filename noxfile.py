import nox


@nox.session()
def clean(session):
    session.install("coverage")
    session.run("coverage", "erase")


@nox.session()
def py3(session):
    session.install(".[test]")
    session.run(
        "pytest",
        "-n=5",
        "--cov-append",
        "--cov=src/mail_annotator",
        "--asyncio-mode=auto",
        "--timeout=10",
    )


@nox.session()
def report(session):
    session.install("coverage")
    session.run("coverage", "html")
    session.run("coverage", "report", "--fail-under=80")
