"""Allow ``python -m bulkupload``."""

from bulkupload.cli import main

main()
