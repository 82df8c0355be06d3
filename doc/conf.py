# Sphinx conf.py

# path setup

import os
import sys
sys.path.insert(0, os.path.abspath('..'))


# project information

project = 'rgconv'
copyright = '2024, rgconv contributors'
author = 'rgconv contributors'


# general configuration

extensions = [
	'sphinx.ext.autodoc',
	'sphinx.ext.napoleon',
]

autodoc_member_order = 'bysource'

templates_path = ['_templates']

exclude_patterns = ['_build', 'Thumbs.db', '.DS_Store']


# html
html_theme = 'alabaster'
html_static_path = ['_static']
