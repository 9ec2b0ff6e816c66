from setuptools import setup, find_namespace_packages

setup(
    name="loop4r",
    version="0.1.0",
    description="Behringer FCB1010 foot controller bridge for SooperLooper on Linux",
    author="mseibert",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src"),
    py_modules=["main", "config"],
    python_requires=">=3.10",
    install_requires=[
        "python-osc>=1.8.0",
        "python-rtmidi>=1.5.0",
        "PyYAML>=6.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "loop4r=main:main",
        ],
    },
)
