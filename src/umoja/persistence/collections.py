"""Collection names shared by every component that touches the store."""

USERS = "users"
TRUST_SCORES = "trust_scores"
ENGAGEMENTS = "engagements"
PEER_REVIEWS = "peer_reviews"
LECTURER_REVIEWS = "lecturer_reviews"
LECTURER_STATS = "lecturer_stats"
PORTFOLIOS = "portfolios"
