"""GraphQL documents used by the Linear adapter."""

ISSUE_FIELDS = """
  id
  identifier
  title
  description
  priority
  estimate
  url
  createdAt
  updatedAt
  state { id name type color }
  assignee { id name displayName email }
  labels { nodes { id name color } }
  project { id name }
  cycle { id number name }
  team { id name key }
"""

VIEWER_QUERY = """
query Viewer {
  viewer { id name email displayName avatarUrl active }
}
"""

TEAMS_QUERY = """
query Teams {
  teams { nodes { id name key description icon color } }
}
"""

TEAM_QUERY = """
query Team($id: String!) {
  team(id: $id) {
    id
    name
    key
    description
    icon
    color
    states { nodes { id name type color description position } }
    labels { nodes { id name color } }
    members { nodes { id name displayName email active } }
  }
}
"""

ISSUES_QUERY = f"""
query Issues($filter: IssueFilter, $first: Int, $after: String) {{
  issues(filter: $filter, first: $first, after: $after) {{
    nodes {{ {ISSUE_FIELDS} }}
    pageInfo {{ hasNextPage endCursor }}
  }}
}}
"""

ISSUE_QUERY = f"""
query Issue($id: String!) {{
  issue(id: $id) {{ {ISSUE_FIELDS} }}
}}
"""

CREATE_ISSUE_MUTATION = f"""
mutation IssueCreate($input: IssueCreateInput!) {{
  issueCreate(input: $input) {{
    success
    issue {{ {ISSUE_FIELDS} }}
  }}
}}
"""

UPDATE_ISSUE_MUTATION = f"""
mutation IssueUpdate($id: String!, $input: IssueUpdateInput!) {{
  issueUpdate(id: $id, input: $input) {{
    success
    issue {{ {ISSUE_FIELDS} }}
  }}
}}
"""

DELETE_ISSUE_MUTATION = """
mutation IssueDelete($id: String!) {
  issueDelete(id: $id) { success }
}
"""

CREATE_COMMENT_MUTATION = """
mutation CommentCreate($input: CommentCreateInput!) {
  commentCreate(input: $input) {
    success
    comment { id body createdAt user { id name } }
  }
}
"""

ISSUE_COMMENTS_QUERY = """
query IssueComments($id: String!) {
  issue(id: $id) {
    comments { nodes { id body createdAt user { id name } } }
  }
}
"""

CREATE_ISSUE_RELATION_MUTATION = """
mutation IssueRelationCreate($input: IssueRelationCreateInput!) {
  issueRelationCreate(input: $input) {
    success
    issueRelation {
      id
      type
      issue { id }
      relatedIssue { id identifier }
    }
  }
}
"""

ISSUE_RELATIONS_QUERY = """
query IssueRelations($id: String!) {
  issue(id: $id) {
    relations {
      nodes {
        id
        type
        issue { id }
        relatedIssue { id identifier }
      }
    }
    inverseRelations {
      nodes {
        id
        type
        issue { id identifier }
        relatedIssue { id }
      }
    }
  }
}
"""

PROJECTS_QUERY = """
query Projects($teamId: String!, $first: Int) {
  team(id: $teamId) {
    projects(first: $first) {
      nodes { id name description state progress startDate targetDate }
    }
  }
}
"""

CREATE_PROJECT_MUTATION = """
mutation ProjectCreate($input: ProjectCreateInput!) {
  projectCreate(input: $input) {
    success
    project { id name description state progress startDate targetDate }
  }
}
"""

CYCLES_QUERY = """
query Cycles($teamId: String!, $first: Int) {
  team(id: $teamId) {
    cycles(first: $first) {
      nodes { id number name startsAt endsAt }
    }
  }
}
"""

CREATE_CYCLE_MUTATION = """
mutation CycleCreate($input: CycleCreateInput!) {
  cycleCreate(input: $input) {
    success
    cycle { id number name startsAt endsAt }
  }
}
"""

CREATE_WEBHOOK_MUTATION = """
mutation WebhookCreate($input: WebhookCreateInput!) {
  webhookCreate(input: $input) {
    success
    webhook { id url label enabled resourceTypes team { id } }
  }
}
"""

WEBHOOKS_QUERY = """
query Webhooks {
  webhooks { nodes { id url label enabled resourceTypes team { id } } }
}
"""

DELETE_WEBHOOK_MUTATION = """
mutation WebhookDelete($id: String!) {
  webhookDelete(id: $id) { success }
}
"""
