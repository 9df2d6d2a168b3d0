"""Navigation supervisor ROS 2 package setup configuration.

Defines package metadata, entry points, and installation requirements for
the mission supervisor that keeps a nav2 path follower fed with fresh local
path segments.
"""

from setuptools import setup


package_name = "nav_supervisor"


setup(
    name=package_name,
    version="0.1.0",
    packages=[package_name],
    data_files=[
        ("share/ament_index/resource_index/packages", [f"resource/{package_name}"]),
        (f"share/{package_name}", ["package.xml"]),
        (f"share/{package_name}/launch", ["launch/nav_supervisor.launch.py"]),
    ],
    install_requires=["setuptools", "numpy"],
    extras_require={"test": ["pytest"]},
    zip_safe=True,
    maintainer="Navigation Developers",
    maintainer_email="dev@navigation.local",
    description="Mission supervisor driving a path executor from planner output.",
    license="proprietary",
    tests_require=["pytest"],
    entry_points={
        "console_scripts": [
            "supervisor = nav_supervisor.supervisor_node:main",
        ],
    },
)
