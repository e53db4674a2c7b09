from setuptools import setup, find_namespace_packages

setup(
    name="vitrine",
    version="1.0.0",
    packages=find_namespace_packages(include=["vitrine", "vitrine.*"]),
    install_requires=[
        "django>=4.0",
        "requests",
        "pydantic[email]>=2",
        "python-decouple",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.11",
)
