# filevault: encrypted file storage API.
