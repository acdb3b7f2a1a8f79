"""Setup configuration for comment_heatmap"""

from setuptools import setup, find_packages

setup(
    name="confluence-comment-heatmap",
    version="0.1.0",
    description=(
        "CLI tool and library for Confluence inline comment analytics: thread "
        "ranking, tiered highlights and a thread-detail popup controller."
    ),
    author="Confluence Comment Heatmap Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
        "beautifulsoup4>=4.11.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "comment-heatmap=comment_heatmap.main:main",
        ],
    },
)
