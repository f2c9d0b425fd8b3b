# Inbound events (client -> server)
CREATE_ROOM = "create-room"
JOIN_ROOM = "join-room"
REJOIN_ROOM = "rejoin-room"
WEBRTC_SIGNAL = "webrtc-signal"
CHAT_MESSAGE = "chat-message"
SYSTEM_MESSAGE = "system-message"
UPDATE_USERNAME = "update-username"
TOGGLE_HAND = "toggle-hand"
SCREEN_SHARE_STATUS = "screen-share-status"
FILE_UPLOAD_START = "file-upload-start"
FILE_UPLOAD_PROGRESS = "file-upload-progress"
FILE_UPLOAD = "file-upload"
FILE_DOWNLOAD_REQUEST = "file-download-request"
LEAVE_ROOM = "leave-room"
PING = "ping"

# Outbound events (server -> client)
ROOM_CREATED = "room-created"
ROOM_JOINED = "room-joined"
REJOIN_SUCCESS = "rejoin-success"
USER_JOINED = "user-joined"
USER_LEFT = "user-left"
USERS_LIST_UPDATED = "users-list-updated"
USERNAME_UPDATED = "username-updated"
USER_HAND_TOGGLED = "user-hand-toggled"
FILE_UPLOAD_STARTED = "file-upload-started"
FILE_UPLOAD_COMPLETED = "file-upload-completed"
FILE_DOWNLOAD_RESPONSE = "file-download-response"
TIMER_UPDATE = "timer-update"
ROOM_TIME_ENDED = "room-time-ended"
PONG = "pong"
# Error notices are named by errors.RelayError.notice
