from setuptools import setup

# Read version from sshconn/VERSION
with open('sshconn/VERSION') as f:
    VERSION = f.read().strip()

setup(
    name='ssh-conn',
    version=VERSION,
    description='Interactive curses-based SSH server list, editor and launcher (using ssh config)',
    long_description=open('README.md', encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console :: Curses',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Networking',
        'Topic :: System :: Systems Administration',
    ],
    python_requires='>=3.9',
    packages=['sshconn'],
    package_data={'sshconn': ['VERSION', 'locales/*.yaml']},
    install_requires=[
        'pyyaml',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'ssh-conn=sshconn:cli_entry',
        ],
    },
)
