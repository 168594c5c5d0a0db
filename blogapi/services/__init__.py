# Services package.
#
# Each module exposes a focused set of async functions for one concern:
#
#   article_service  - cached list/detail reads and admin writes for Article
#   tag_service      - article/tag link maintenance
#   auth_service     - registration and login for User
#   draft_service    - article drafts from the external text-generation endpoint
#
# Read functions accept an AsyncSession as their first argument and leave
# the transaction to the ``get_db`` dependency.  Article writes commit
# themselves so the cache flush that follows never precedes the commit.
