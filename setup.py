from setuptools import find_packages, setup # type: ignore

setup(
	name='rgconv',
	version='0.3',

	packages=find_packages(exclude=['test', 'test.*']),
	include_package_data=True,

	python_requires='~=3.10',

	install_requires=[
		'pyyaml>=6.0',
		'attrs>=21.4',
	],

	extras_require={
		'lint': [ # unit, type, code style testing
			'mypy~=0.991',
			'flake8==3.9.2', # b/c flake8-tabs: ~=3.0
			'flake8-tabs~=2.3,>=2.3.2',
		],
	},

	classifiers=[
		'Development Status :: 3 - Alpha',
		'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
		'Programming Language :: Python :: 3',
		'Operating System :: OS Independent',
		'Topic :: Games/Entertainment',
	],

	entry_points={
		'console_scripts': [
			'rgconv = rgconv.main:main'
		],
	},
)
