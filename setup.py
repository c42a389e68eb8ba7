import os

from setuptools import find_packages, setup


def read(fname):
    with open(os.path.join(os.path.dirname(__file__), fname), encoding="utf-8") as f:
        return f.read()


setup(
    name="mail-annotator",
    version="0.1.0",
    author="mail-annotator contributors",
    description="IMAP service annotating suspicious mails within their thread",
    long_description=read("README.md"),
    long_description_content_type="text/markdown",
    license="MIT",
    keywords="imap phishing annotation",
    packages=find_packages("src"),
    package_dir={"": "src"},
    package_data={"mail_annotator.resources": ["*.html"]},
    include_package_data=True,
    entry_points={"console_scripts": ["mail_annotator = mail_annotator.__main__:main"]},
    install_requires=[
        "aiohttp",
        "typing_extensions; python_version < '3.11'",
    ],
    extras_require={
        "test": [
            "pymap",
            "pytest",
            "pytest-asyncio",
            "pytest-cov",
            "pytest-xdist",
            "pytest-timeout",
            "coverage",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
)
