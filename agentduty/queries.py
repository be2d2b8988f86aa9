"""GraphQL documents sent to the AgentDuty service."""

RESPONSE_FIELDS = """
        responses {
            text
            selectedOption
            channel
            createdAt
        }"""

NOTIFICATION_FIELDS = """
        id
        shortCode
        status
        priority
        message
        options
        createdAt
        snoozedUntil""" + RESPONSE_FIELDS

GET_NOTIFICATION = """query GetNotification($id: String!) {
    notification(id: $id) {""" + NOTIFICATION_FIELDS + """
    }
}"""

SESSION_HISTORY = """query SessionHistory($sessionKey: String!) {
    sessionHistory(sessionKey: $sessionKey) {
        sessionId
        workspace
        notifications {""" + NOTIFICATION_FIELDS + """
        }
    }
}"""

ACTIVE_FEED = """query ActiveFeed {
    activeFeed {""" + NOTIFICATION_FIELDS + """
    }
}"""

LIST_NOTIFICATIONS = """query ListNotifications($status: String) {
    notifications(status: $status) {
        id
        shortCode
        status
        priority
        message
        createdAt
    }
}"""

CREATE_NOTIFICATION = """mutation CreateNotification(
    $message: String!,
    $priority: Int,
    $options: [String!],
    $context: String,
    $tags: [String!],
    $sessionKey: String,
    $workspace: String
) {
    createNotification(
        message: $message,
        priority: $priority,
        options: $options,
        context: $context,
        tags: $tags,
        sessionKey: $sessionKey,
        workspace: $workspace
    ) {
        id
        shortCode
        status
        priority
        message
        createdAt
    }
}"""

RESPOND = """mutation RespondToNotification($id: String!, $text: String, $selectedOption: String) {
    respondToNotification(id: $id, text: $text, selectedOption: $selectedOption) {""" + NOTIFICATION_FIELDS + """
    }
}"""

SNOOZE = """mutation SnoozeNotification($id: String!, $minutes: Int!) {
    snoozeNotification(id: $id, minutes: $minutes) {""" + NOTIFICATION_FIELDS + """
    }
}"""

ARCHIVE = """mutation ArchiveNotification($id: String!) {
    archiveNotification(id: $id) {""" + NOTIFICATION_FIELDS + """
    }
}"""

ARCHIVE_ALL = """mutation ArchiveAllNotifications {
    archiveAllNotifications
}"""

ADD_REACTION = """mutation AddReaction($id: String!, $emoji: String!, $responseIndex: Int) {
    addReaction(id: $id, emoji: $emoji, responseIndex: $responseIndex)
}"""

CREATE_API_KEY = """mutation CreateApiKey($name: String!) {
    createApiKey(name: $name) {
        key
        id
        prefix
    }
}"""

LIST_API_KEYS = """query ApiKeys {
    apiKeys {
        id
        name
        keyPrefix
        lastUsedAt
        createdAt
    }
}"""

REVOKE_API_KEY = """mutation RevokeApiKey($id: String!) {
    revokeApiKey(id: $id)
}"""

SLACK_CONNECTED = """query SlackConnected {
    slackConnected
}"""

GENERATE_SLACK_LINK_CODE = """mutation GenerateSlackLinkCode {
    generateSlackLinkCode
}"""

ME = """query Me {
    me {
        id
    }
}"""
