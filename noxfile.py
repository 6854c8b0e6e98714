import nox


PYTHON_FILES = [
    "gemtext2md.py",
    "setup.py",
    "noxfile.py",
    "tests",
]


@nox.session(reuse_venv=True)
def lint(session):
    session.install("-e", ".[dev]")
    session.run("flake8", "--max-line-length=88", *PYTHON_FILES)
    session.run("black", "--check", "--diff", "--color", *PYTHON_FILES)


@nox.session(reuse_venv=True)
def black_fix(session):
    session.install("black")
    session.run("black", *PYTHON_FILES)


@nox.session(python=["3.9", "3.10", "3.11", "3.12", "3.13"], reuse_venv=True)
def test(session):
    session.install("pytest", "markdown-it-py")
    session.install("-e", ".")
    session.run("pytest", "-vv", "--doctest-modules", "gemtext2md.py", "tests/")
