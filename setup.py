from setuptools import setup

with open("tapo/version.py") as f:
    exec(f.read())

setup(
    name="python-tapo",
    version=__version__,  # type: ignore # noqa: F821
    description="Python API for TP-Link Tapo smart plugs using the KLAP protocol",
    url="https://github.com/python-tapo/python-tapo",
    author="",
    author_email="",
    license="GPLv3",
    packages=["tapo", "tapo.protocols", "tapo.transports"],
    install_requires=[
        "aiohttp>=3",
        "asyncclick>=8.1.7",
        "cryptography>=1.9",
        "mashumaro>=3.11",
        "orjson>=3.9.1",
        "yarl",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio>=0.23",
            "pytest-mock",
        ],
    },
    python_requires=">=3.11",
    entry_points={"console_scripts": ["tapo=tapo.cli:cli"]},
    zip_safe=False,
)
